from sqlalchemy.orm import declarative_base

# Durable store: stores, products, orders, payments, processed_updates
Base = declarative_base()

# Ephemeral session store: conversation_states only
SessionBase = declarative_base()
