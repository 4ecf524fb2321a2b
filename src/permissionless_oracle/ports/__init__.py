"""
Ports Layer (Hexagonal Architecture)
====================================

Abstract interfaces defining the contracts between the engine core
and its external collaborators. These are the "ports" that adapters plug into.
"""
