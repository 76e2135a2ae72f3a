from kyc_workflow.schemas.user_schemas import UserCreate, UserResponse, Token, LoginGateResponse
