"""
CustomerService -- enrollment and activation of cooperative members.

Customers are never deleted or merged; a deactivated customer keeps its
history and can no longer receive payments.
"""

from uuid import UUID

from billing_kernel.exceptions import CustomerNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.services.base import BaseService

logger = get_logger("services.customer")


class CustomerService(BaseService[Customer]):
    def enroll(self, customer_number: str, name: str, actor_id: str | None = None) -> Customer:
        customer = Customer(
            customer_number=customer_number,
            name=name,
            is_active=True,
            created_by=actor_id,
        )
        self.session.add(customer)
        self.session.flush()
        logger.info(
            "customer_enrolled",
            extra={"customer_id": str(customer.id), "customer_number": customer_number},
        )
        return customer

    def set_active(self, customer_id: UUID, active: bool, actor_id: str | None = None) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        customer.is_active = active
        customer.updated_by = actor_id
        self.session.flush()
        logger.info(
            "customer_activation_changed",
            extra={"customer_id": str(customer_id), "is_active": active},
        )
        return customer
