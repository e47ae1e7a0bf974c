"""Backend adapters for the supported LLM vendors.

Import adapters from their modules (``prgen.llm.openai`` and friends) or build
them by type through ``prgen.registry.create_adapter``.
"""
