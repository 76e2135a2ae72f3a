from kyc_workflow.database.models.audit_log_model import AuditLog
from kyc_workflow.database.models.branch_model import Branch
from kyc_workflow.database.models.document_counter_model import DocumentCounter
from kyc_workflow.database.models.document_record_model import DocumentRecord
from kyc_workflow.database.models.source_person_model import SourcePerson
from kyc_workflow.database.models.user_model import User
from kyc_workflow.database.models.verification_record_model import VerificationRecord

DOCUMENT_MODELS = [User, DocumentRecord, VerificationRecord, DocumentCounter, AuditLog, Branch, SourcePerson]
