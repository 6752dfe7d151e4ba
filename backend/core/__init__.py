"""Pure calculation engine for the exposure ledger.

``exposure_math`` holds every figure the ledger shows: exposure totals,
break-even odds, scenario P&L, risk metrics, the odds converter, settlement
payouts and the display rounding helpers.

The package never imports ``backend.models`` or ``backend.services``.
"""
