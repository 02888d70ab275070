from survey360.models.audit_event import AuditEvent
from survey360.models.email_audit_log import EmailAuditLog
from survey360.models.employee import Employee
from survey360.models.evaluator import Evaluator
from survey360.models.rbac import Permission, Role, RolePermission, UserRole
from survey360.models.report_template import ReportTemplate
from survey360.models.subject import Subject
from survey360.models.subject_evaluator import SubjectEvaluator
from survey360.models.survey import Survey
from survey360.models.survey_assignment import SurveyAssignment
from survey360.models.survey_submission import SurveySubmission
from survey360.models.tenant import Tenant
from survey360.models.user import User

__all__ = [ "AuditEvent", "EmailAuditLog", "Employee", "Evaluator", "Permission",
           "Role", "RolePermission", "UserRole", "ReportTemplate", "Subject",
           "SubjectEvaluator", "Survey", "SurveyAssignment", "SurveySubmission",
           "Tenant", "User" ]
