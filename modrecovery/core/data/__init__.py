"""
Static catalogs — module universe, layer map, and recovery phase table.

All data in this package is immutable and accessed through free functions:

    from modrecovery.core.data.layers import get_module_layer_info
    from modrecovery.core.data.phases import get_phase_definition
"""
