from kyc_workflow.core.config import Settings, settings
from kyc_workflow.core.security import (
    create_access_token,
    decode_token,
    hash_password,
    is_valid_password,
    verify_password,
)
