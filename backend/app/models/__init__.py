from app.models.store import Store
from app.models.product import Product
from app.models.order import Order
from app.models.payment import Payment
from app.models.processed_update import ProcessedUpdate
from app.models.conversation_state import ConversationState

__all__ = ["Store", "Product", "Order", "Payment", "ProcessedUpdate", "ConversationState"]
