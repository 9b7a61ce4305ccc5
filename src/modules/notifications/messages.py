"""Customer-facing push texts per order status."""

from __future__ import annotations

from modules.orders.constants import OrderStatus

STATUS_MESSAGES = {
    OrderStatus.AWAITING_PAYMENT: ("Pedido aguardando pagamento", "Pague o PIX do pedido {number} para confirmá-lo."),
    OrderStatus.PENDING: ("Pagamento confirmado", "Recebemos o pedido {number}. O supermercado vai confirmá-lo em breve."),
    OrderStatus.CONFIRMED: ("Pedido confirmado", "O supermercado confirmou o pedido {number}."),
    OrderStatus.PREPARING: ("Pedido em preparo", "O pedido {number} está sendo separado."),
    OrderStatus.READY: ("Pedido pronto", "O pedido {number} está pronto."),
    OrderStatus.SHIPPED: ("Pedido a caminho", "O pedido {number} saiu para entrega."),
    OrderStatus.COMPLETED: ("Pedido concluído", "Obrigado por salvar alimentos com o pedido {number}!"),
    OrderStatus.CANCELLED: ("Pedido cancelado", "O pedido {number} foi cancelado."),
    OrderStatus.CANCELLED_STAFF: ("Pedido cancelado", "O supermercado cancelou o pedido {number}."),
    OrderStatus.CANCELLED_CUSTOMER: ("Pedido cancelado", "Você cancelou o pedido {number}."),
    OrderStatus.PAYMENT_EXPIRED: ("Pagamento expirado", "O prazo do PIX do pedido {number} terminou."),
    OrderStatus.PAYMENT_FAILED: ("Pagamento recusado", "O pagamento do pedido {number} não foi aprovado."),
}

DEFAULT_MESSAGE = ("Pedido atualizado", "O pedido {number} foi atualizado.")


def status_message(status: str, order_number: str) -> tuple[str, str]:
    title, body = STATUS_MESSAGES.get(status, DEFAULT_MESSAGE)
    return title, body.format(number=order_number)
