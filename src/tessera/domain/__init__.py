"""Domain layer for TESSERA.

Plain data types describing test units, their outcomes and the errors that
classify them. No I/O happens here and nothing in this package imports from
`tessera.adapters`, `tessera.service_layer` or `tessera.entrypoints`.
"""
