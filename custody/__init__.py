"""custody/ -- Rooms, their two keys, and the checkout/checkin ledger.

Layer rule: custody/ imports from core/ and db/ only.
"""
