"""Quantized NNUE evaluation building blocks: features, layers, transformer and accumulators."""

__version__ = "0.1.0"