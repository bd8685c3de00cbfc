"""CPI / regional price parity refresh pipeline.

Pulls the latest national CPI and state RPP readings, applies them to the
pricing database in a single transaction and triggers the pricing recompute.
"""
