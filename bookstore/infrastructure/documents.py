"""Invoice rendering port.

PDF layout is owned by the document service. The built-in renderer
produces a plain-text invoice so that downloads and invoice emails work
without it.
"""

from abc import ABC, abstractmethod

from bookstore.domain.entities import Order


class DocumentRenderer(ABC):
    """Turns an order into printable bytes."""

    media_type: str = "application/pdf"
    extension: str = "pdf"

    @abstractmethod
    def render_invoice(self, order: Order, customer_email: str | None = None) -> bytes:
        """Render the invoice of an order."""
        ...

    def filename_for(self, order: Order) -> str:
        return f"invoice-{order.order_number or order.id}.{self.extension}"


class TextInvoiceRenderer(DocumentRenderer):
    """Plain-text invoice."""

    media_type = "text/plain; charset=utf-8"
    extension = "txt"

    def render_invoice(self, order: Order, customer_email: str | None = None) -> bytes:
        rows = [
            "Dream Books Library - Invoice",
            f"Order: {order.order_number}",
            f"Date: {order.ordered_at:%Y-%m-%d %H:%M} UTC",
            f"Status: {order.status.value}",
        ]
        if customer_email:
            rows.append(f"Customer: {customer_email}")
        rows.append(f"Ship to: {order.shipping_address}")
        rows.append("")
        for line in order.lines:
            title = line.title or f"Book #{line.book_id}"
            rows.append(f"{title:<40} {line.quantity:>3} x {line.unit_price} = {line.line_total}")
        rows.append("")
        rows.append(f"Subtotal: {order.subtotal}")
        if not order.promo_discount.is_zero():
            rows.append(f"Discount ({order.promo_code}): -{order.promo_discount}")
        rows.append(f"Total: {order.total_amount}")
        rows.append(f"Payment method: {order.payment_method}")
        return "\n".join(rows).encode("utf-8")


_renderer: DocumentRenderer | None = None


def get_document_renderer() -> DocumentRenderer:
    """Get document renderer singleton."""
    global _renderer
    if _renderer is None:
        _renderer = TextInvoiceRenderer()
    return _renderer
