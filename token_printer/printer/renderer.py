"""Receipt layouts for token slips and the connection self-test slip."""
from datetime import datetime
from typing import List, Optional

from token_printer.printer.escpos import ESCPOSBuilder


class ReceiptRenderer:
    """Renders the fixed receipt layouts to ESC/POS bytes.

    Every render starts from a freshly reset builder, so the output always
    begins with ``ESC @`` and never carries state over from a previous job.
    """

    TOKEN_PREFIX = "SENHA"
    CATEGORY_LABEL = "Categoria"

    def __init__(self, width: int = 48, codepage: str = "cp850",
                 footer: str = "Aguarde ser chamado",
                 timestamp_format: str = "%d/%m/%Y %H:%M:%S",
                 logo_path: Optional[str] = None):
        """Initialize renderer.

        Args:
            width: Character width per line
            codepage: Printer code page (Python codec name)
            footer: Instruction line printed under the token
            timestamp_format: strftime format of the printed date/time
            logo_path: Optional image printed above the establishment name
        """
        self.width = width
        self.codepage = codepage
        self.footer = footer
        self.timestamp_format = timestamp_format
        self.logo_path = logo_path

    def _builder(self) -> ESCPOSBuilder:
        return ESCPOSBuilder(width=self.width, codepage=self.codepage).clear()

    def format_timestamp(self, when: datetime) -> str:
        return when.strftime(self.timestamp_format)

    def render_token(self, token_number: str, establishment_name: Optional[str] = None,
                     category: Optional[str] = None, when: Optional[datetime] = None) -> bytes:
        """Render a token slip.

        Raises:
            UnicodeEncodeError: text cannot be represented in the code page
            ValueError: invalid layout input (e.g. empty token number)
        """
        if not token_number:
            raise ValueError("Token number is required")
        when = when or datetime.now()
        builder = self._builder()

        builder.size(1, 1).align_center().line()

        if self.logo_path:
            builder.image(self.logo_path)

        if establishment_name:
            builder.size(1, 2).println(establishment_name).newline()

        builder.size(3, 3).align_center()
        builder.println(f"{self.TOKEN_PREFIX}: {token_number}").newline()

        builder.size(1, 1).align_center()
        if category:
            builder.println(f"{self.CATEGORY_LABEL}: {category}")
        builder.println(self.format_timestamp(when)).newline()

        builder.println(self.footer)
        builder.line()
        builder.cut()
        return builder.build()

    def render_self_test(self, endpoint_label: str, when: Optional[datetime] = None) -> bytes:
        """Render the short slip printed after a successful connection."""
        when = when or datetime.now()
        builder = self._builder()
        builder.size(1, 1).align_center()
        builder.println("=== TESTE DE CONEXAO ===").newline()
        builder.println("Impressora conectada!")
        builder.println(endpoint_label)
        builder.println(self.format_timestamp(when)).newline()
        builder.println("Sistema: OK")
        builder.cut()
        return builder.build()

    def render_preview(self, token_number: str, establishment_name: Optional[str] = None,
                       category: Optional[str] = None, when: Optional[datetime] = None) -> str:
        """Plain text rendition of a token slip, used for log output."""
        when = when or datetime.now()
        lines: List[str] = ["=" * self.width]
        if establishment_name:
            lines.extend([establishment_name.center(self.width), ""])
        lines.extend([f"{self.TOKEN_PREFIX}: {token_number}".center(self.width), ""])
        if category:
            lines.append(f"{self.CATEGORY_LABEL}: {category}".center(self.width))
        lines.extend([self.format_timestamp(when).center(self.width), ""])
        lines.append(self.footer.center(self.width))
        lines.append("=" * self.width)
        lines.append("--- CUT ---")
        return "\n".join(line.rstrip() for line in lines)
