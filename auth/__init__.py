"""auth/ -- Identity and access package for KeyControl.

Layer rule: auth/ imports from core/ and db/ only.
It does NOT import from api/ or custody/.
api/ imports from auth/, not the other way around.
"""
