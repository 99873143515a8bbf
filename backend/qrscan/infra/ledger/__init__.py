from .memory_ledger import InMemoryConsumedTokenLedger  # noqa: F401
from .redis_ledger import RedisConsumedTokenLedger  # noqa: F401
