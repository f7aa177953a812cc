"""DuckDB persistence for markets, bets and the derived ledgers."""
