"""Core analysis engine: tokenizing, segmenting, unwrapping and evaluation."""
