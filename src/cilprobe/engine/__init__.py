"""Constant-resolution engine: decoder, static-initializer scanner, getter evaluator, resolver."""
