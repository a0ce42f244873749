# evalportal/db/base.py
# Import all models here so Base.metadata knows every table
from evalportal.db.base_class import Base  # noqa
from evalportal.models.user import User  # noqa
from evalportal.models.submission import Submission  # noqa
from evalportal.models.assignment import SubmissionAssignment  # noqa
from evalportal.models.audit_log import AssignmentLog  # noqa
from evalportal.models.evaluation import ManualEvaluation  # noqa
