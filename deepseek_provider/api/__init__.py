"""Adapter package.

Architectural role:
- Defines the external interaction boundary for CLI and HTTP interfaces.
- Performs transport-level validation and response shaping.
- Delegates model calls to `deepseek_provider.llm`.
"""
