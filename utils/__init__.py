"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, today_utc, due_date
from utils.tenant_context import (
    get_current_tenant_id,
    peek_current_tenant_id,
    set_current_tenant_id,
    clear_current_tenant_id,
    tenant_context,
)
from utils.money import (
    round_half_up,
    to_cents,
    from_cents,
    apply_rate,
    apply_bps,
    rate_to_bps,
)
