from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired when a user logged in, so screens can rebuild role-dependent parts
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever the till's cart is mutated (add, quantity edit, remove,
    clear, hold recovery). Triggers a refresh of the POS screen.

    If posted from outside the POS screen, make sure to post at App level
    """

    bubble = True


class HoldSalesChangedMessage(Message):
    """
    Fired when a sale is parked, completed from hold, or deleted.
    """

    bubble = True


class InvoiceCreatedMessage(Message):
    """
    Fired when a sale is finalized into an invoice.
    Listened to by sales history and reports.
    """

    bubble = True

    def __init__(self, invoice_id: str) -> None:
        super().__init__()
        self.invoice_id = invoice_id


class InvoiceVoidedMessage(Message):
    bubble = True

    def __init__(self, invoice_id: str) -> None:
        super().__init__()
        self.invoice_id = invoice_id


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
