"""auth/ -- Credential handling and authorization for PinSquirrel.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, pins/, or mail/.
api/ imports from auth/, not the other way around.
"""
