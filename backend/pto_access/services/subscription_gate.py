"""
Subscription gate.

Paid surfaces are reachable only while the organization's subscription is
ACTIVE or TRIAL. Anything else, including a missing organization record,
fails closed with SubscriptionRequiredError (402).
"""

import logging

from pto_access.auth.context_resolver import RequestContext
from pto_access.constants.subscription import ENTITLED_STATUSES
from pto_access.platform.errors import SubscriptionRequiredError

logger = logging.getLogger(__name__)


class SubscriptionGate:
    """allow(context) -> None | SubscriptionRequiredError."""

    def allow(self, context: RequestContext) -> None:
        organization = context.organization
        if organization is None:
            logger.warning(
                "Subscription check failed: organization not loaded",
                extra=context.log_extra(),
            )
            raise SubscriptionRequiredError(details={"subscription_status": None})

        if organization.subscription_status not in ENTITLED_STATUSES:
            logger.warning(
                "Subscription check failed",
                extra={
                    **context.log_extra(),
                    "subscription_status": organization.subscription_status.value,
                },
            )
            raise SubscriptionRequiredError(
                details={"subscription_status": organization.subscription_status.value}
            )

    def is_entitled(self, context: RequestContext) -> bool:
        organization = context.organization
        return organization is not None and organization.subscription_status in ENTITLED_STATUSES
