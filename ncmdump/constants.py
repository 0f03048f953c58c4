# Container header
MAGIC = b"CTENFDAM\x01\x70"         # 10 bytes: "CTENFDAM" + format version
HEADER_GAP_SIZE = 2
COVER_GAP_SIZE = 5
LENGTH_PREFIX_SIZE = 4
CRC_SIZE = 4

# Key blob pipeline
KEY_MASK = 0x64
KEY_AES_KEY = b"hzHRAmso5kInbaxW"
KEY_PREFIX = b"neteasecloudmusic"

# Metadata blob pipeline
META_MASK = 0x63
META_AES_KEY = b"#14ljk_!\\]&0U<'("
META_MARKER = b"163 key(Don't modify):"
META_PREFIX = b"music:"

AES_BLOCK_SIZE = 16

# Keystream
KEYSTREAM_SIZE = 256

# Audio signatures
SIG_FLAC = b"fLaC"
SIG_ID3 = b"ID3"

# Cover image signatures
SIG_PNG = b"\x89PNG\r\n\x1a\n"
SIG_JPEG = b"\xff\xd8\xff"

DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB
MAX_WORKERS = 8
