"""auth/ -- Credential hashing, tokens, session flows and authorization gates for Tokengate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
where a module needs Settings for type hints. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
