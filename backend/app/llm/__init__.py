"""Language-model providers and the tool-calling loop."""
