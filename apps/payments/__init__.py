"""Payments app: payment intents and the processor integrations behind them."""
