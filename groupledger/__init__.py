"""GroupLedger: group expense ledger and debt-settlement API."""
