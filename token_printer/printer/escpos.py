"""ESC/POS command builder for thermal receipt printers."""
import io
from typing import Optional, Union
from PIL import Image


class ESCPOSBuilder:
    """Builder for ESC/POS printer commands.

    Text is encoded strictly with the selected code page, so a character the
    printer cannot represent raises ``UnicodeEncodeError`` instead of being
    silently replaced on paper.
    """

    # ESC/POS Command Constants
    ESC = b'\x1b'
    GS = b'\x1d'
    DLE = b'\x10'
    EOT = b'\x04'

    # Initialize printer (also clears the print buffer)
    INIT = ESC + b'\x40'  # ESC @

    # Character size
    CHAR_SIZE = GS + b'\x21'      # GS ! n

    # Alignment
    ALIGN_CENTER = ESC + b'\x61\x01'  # ESC a 1

    # Paper control
    CUT_FULL = GS + b'\x56\x00'  # GS V 0 - Full cut
    CUT_PARTIAL = GS + b'\x56\x01'  # GS V 1 - Partial cut
    FEED_LINE = b'\n'

    # Real-time status (DLE EOT n)
    STATUS_PRINTER = DLE + EOT + b'\x01'

    # Code page selection, ESC t n
    CODEPAGES = {
        "cp437": 0,
        "cp850": 2,
        "cp860": 3,
        "cp863": 4,
        "cp865": 5,
        "cp858": 19,
    }

    def __init__(self, width: int = 48, codepage: str = "cp850"):
        """Initialize builder.

        Args:
            width: Character width per line (48 for 80mm, 32 for 58mm paper)
            codepage: Python codec name of the printer code page
        """
        if codepage not in self.CODEPAGES:
            raise ValueError(f"Unsupported code page: {codepage}")
        self.width = width
        self.codepage = codepage
        self._buffer = bytearray()
        self.reset()

    def reset(self) -> "ESCPOSBuilder":
        """Drop everything composed so far and start with a clean printer state."""
        self._buffer = bytearray()
        self._buffer.extend(self.INIT)
        self._buffer.extend(self.ESC + b'\x74' + bytes([self.CODEPAGES[self.codepage]]))
        return self

    clear = reset

    # Text formatting methods

    def encode(self, content: str) -> bytes:
        return content.encode(self.codepage)

    def text(self, content: str) -> "ESCPOSBuilder":
        """Add plain text."""
        self._buffer.extend(self.encode(content))
        return self

    def println(self, content: str = "") -> "ESCPOSBuilder":
        """Add a line of text followed by a line feed."""
        return self.text(content).newline()

    def newline(self, count: int = 1) -> "ESCPOSBuilder":
        """Add newline(s)."""
        self._buffer.extend(self.FEED_LINE * count)
        return self

    def size(self, width: int = 1, height: int = 1) -> "ESCPOSBuilder":
        """Set character magnification, 1-8 in each direction."""
        if not (1 <= width <= 8 and 1 <= height <= 8):
            raise ValueError(f"Character size out of range: {width}x{height}")
        self._buffer.extend(self.CHAR_SIZE)
        self._buffer.append(((width - 1) << 4) | (height - 1))
        return self

    def align_center(self) -> "ESCPOSBuilder":
        self._buffer.extend(self.ALIGN_CENTER)
        return self

    # Line formatting

    def line(self, char: str = "=", length: Optional[int] = None) -> "ESCPOSBuilder":
        """Print a horizontal rule."""
        self._buffer.extend(self.encode(char * (length or self.width)))
        self._buffer.extend(self.FEED_LINE)
        return self

    # Paper control

    def cut(self, partial: bool = False) -> "ESCPOSBuilder":
        """Cut the paper."""
        # Feed a bit before cutting to ensure content clears the cutter
        self._buffer.extend(self.FEED_LINE * 4)
        self._buffer.extend(self.CUT_PARTIAL if partial else self.CUT_FULL)
        return self

    # Image printing

    def image(self, img: Union[Image.Image, bytes, str], max_width: Optional[int] = None) -> "ESCPOSBuilder":
        """Print a raster image (used for the establishment logo).

        Args:
            img: PIL Image, bytes (raw image data), or path to image file
            max_width: Maximum width in pixels (default: 384 for 58mm paper)
        """
        if max_width is None:
            max_width = 384  # 58mm paper at 203 DPI

        if isinstance(img, str):
            img = Image.open(img)
        elif isinstance(img, bytes):
            img = Image.open(io.BytesIO(img))

        img = img.convert("L")
        if img.width > max_width:
            ratio = max_width / img.width
            new_height = int(img.height * ratio)
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)

        img = img.convert("1")

        width_bytes = (img.width + 7) // 8
        self._buffer.extend(self.GS)
        self._buffer.extend(b'\x76\x30\x00')  # GS v 0 - Raster bit image
        self._buffer.append(width_bytes & 0xff)
        self._buffer.append((width_bytes >> 8) & 0xff)
        self._buffer.append(img.height & 0xff)
        self._buffer.append((img.height >> 8) & 0xff)

        for y in range(img.height):
            row_bytes = bytearray(width_bytes)
            for x in range(img.width):
                if img.getpixel((x, y)) == 0:  # Black pixel
                    row_bytes[x // 8] |= (0x80 >> (x % 8))
            self._buffer.extend(row_bytes)

        return self

    # Status replies

    @staticmethod
    def parse_printer_status(reply: bytes) -> dict:
        """Decode the one-byte answer to ``DLE EOT 1``.

        Raises ValueError when the fixed bits do not match, which means the
        device on the other end is not speaking ESC/POS.
        """
        if len(reply) != 1:
            raise ValueError(f"Expected a single status byte, got {len(reply)}")
        value = reply[0]
        # Bits 1 and 4 are fixed to 1, bits 0 and 7 to 0.
        if value & 0x93 != 0x12:
            raise ValueError(f"Unexpected status byte 0x{value:02x}")
        return {
            "drawer_open": bool(value & 0x04),
            "offline": bool(value & 0x08),
            "waiting_recovery": bool(value & 0x20),
            "feed_pressed": bool(value & 0x40),
        }

    # Build output

    def build(self) -> bytes:
        """Build and return the command buffer."""
        return bytes(self._buffer)

