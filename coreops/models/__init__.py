# Importing the model modules registers every table on Base.metadata.
from coreops.models import audit, governance, security  # noqa: F401
