"""
Portfolio Desk — crypto holdings, valuation and price sync

Modules:
- holdings: positions, transactions, price history, PortfolioStore, JSON repository
- analytics: valuation, risk metrics, currency table, profit/DCA calculators
- sync: CoinGecko price sync with staleness tracking, refresh timers
"""
