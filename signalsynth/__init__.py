"""
SignalSynth - LLM-gated trade setup discovery

Turns a broad ticker universe into a few ranked, LLM-reviewed trade
setups while keeping paid market-data and LLM calls to a minimum.
"""

__version__ = "0.1.0"
