from salescrm.tenants.models import Tenant  # noqa: F401
from salescrm.auth.models import RefreshToken, User  # noqa: F401
from salescrm.audit.models import OpsAuditLog  # noqa: F401
from salescrm.leads.models import Lead  # noqa: F401
