"""RISC-V 32-bit emulator producing hashed execution traces with fault injection."""

__version__ = "0.1.0"
__all__ = ["__version__"]