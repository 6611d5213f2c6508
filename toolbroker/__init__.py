"""
Toolkit Broker

Tool-calling gateway that fronts a large catalog of provider operations
behind four meta-tools: list_categories, list_operations,
describe_operation and call_operation.

Layers:
1. Catalog - operation descriptors, integration modules, frozen registry
2. Broker  - category index, broker tool set, dispatcher, response envelopes
3. Server  - Model Context Protocol binding (stdio)
"""
