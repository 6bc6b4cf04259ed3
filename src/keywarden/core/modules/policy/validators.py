from keywarden.core.modules.policy.models import Policy
from keywarden.errors import ValidationError


def validate_policy_name(name: str) -> str:
    """Strip and check a policy name.

    Raises:
        ValidationError: If the name is empty or too long
    """
    name = name.strip()
    if not name:
        raise ValidationError("Policy name cannot be empty")
    if len(name) > 100:
        raise ValidationError("Policy name must be at most 100 characters")
    return name


def policy_warnings(policy: Policy) -> list[str]:
    """Configuration that is legal but probably not what the operator meant."""
    warnings = []
    if not policy.active_days:
        warnings.append("no active days set, policy applies on every day")
    if policy.is_all_day and not policy.active_days and policy.expiry_days is None:
        warnings.append("policy places no restriction at all")
    return warnings
