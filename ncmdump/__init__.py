"""
ncmdump — decoder for NCM encrypted audio containers.

Features:

- Container parsing with bounds-checked, length-prefixed sections.
- Key recovery from the obfuscated key and metadata blobs (AES-128-ECB via PyCryptodomex).
- Position-addressable 256-byte keystream: any byte range of the audio can be
  decrypted independently, in any order, on any number of threads.
- Metadata record and raw cover-image extraction.
- CLI (`ncmdump`) that converts many files in parallel.

Decode-only: nothing in this package writes the container format.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "cursor",
    "keyrecovery",
    "keystream",
    "payload",
    "metadata",
    "reader",
]

# Programmatic API: ncmdump.reader.NcmReader opens one container; the CLI
# function ncmdump.cli.cmd_dump takes normal parameters.
