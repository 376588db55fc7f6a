"""pins/ -- Saved URLs ("pins") and their tags.

Layer rule: pins/ imports from core/ and from auth.access (the
authorization gate). It does NOT import from api/ or mail/.
"""
