"""
Integration modules.

Each submodule exposes ``create_module()`` returning an IntegrationModule;
the loader imports them by name from ENABLED_INTEGRATIONS.
"""
