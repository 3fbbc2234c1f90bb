"""
Review readiness for in-app purchases and auto-renewable subscriptions.

These checks are conservative: products that look unsubmitted or that need
developer action produce warnings, which do not block unless `strict` is set,
in which case every warning is reported as an error.

Collection is strict the other way round: a failed fetch aborts with
`ApiError` (no partial product list is validated).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from asc.pipeline.api.client import AscClient
from asc.pipeline.api.errors import ApiError
from asc.pipeline.common.types import attr_str, resource_id

Severity = Literal["error", "warning"]

UNSUBMITTED_STATES = frozenset({"MISSING_METADATA", "READY_TO_SUBMIT"})
NEEDS_ACTION_STATES = frozenset({"DEVELOPER_ACTION_NEEDED", "REJECTED"})


@dataclass(frozen=True)
class Product:
    """The product fields the review checks look at."""

    id: str
    name: str = ""
    product_id: str = ""
    state: str = ""
    kind: str = ""
    group_id: str = ""


@dataclass(frozen=True)
class ProductIssue:
    check: str
    severity: Severity
    message: str
    resource_id: str = ""
    product_id: str = ""


@dataclass
class ProductReport:
    app_id: str
    strict: bool
    total: int = 0
    issues: list[ProductIssue] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "warning")

    @property
    def blocking(self) -> int:
        return self.error_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "strict": self.strict,
            "checks": [
                {
                    "check": i.check,
                    "severity": i.severity,
                    "message": i.message,
                    "resourceId": i.resource_id,
                    "productId": i.product_id,
                }
                for i in self.issues
            ],
            "summary": {
                "total": self.total,
                "errors": self.error_count,
                "warnings": self.warning_count,
                "blocking": self.blocking,
            },
        }


# ---------- Collection ----------


def collect_in_app_purchases(client: AscClient, app_id: str) -> list[Product]:
    try:
        items = client.list_in_app_purchases(app_id)
    except ApiError as exc:
        raise ApiError(
            f"failed to fetch in-app purchases: {exc}",
            status=exc.status,
            code=exc.code,
        ) from exc
    return [
        Product(
            id=resource_id(item),
            name=attr_str(item, "name"),
            product_id=attr_str(item, "productId"),
            state=attr_str(item, "state"),
            kind=attr_str(item, "inAppPurchaseType"),
        )
        for item in items
    ]


def collect_subscriptions(client: AscClient, app_id: str) -> list[Product]:
    """Fetch every subscription of every subscription group of the app."""
    try:
        groups = client.list_subscription_groups(app_id)
    except ApiError as exc:
        raise ApiError(
            f"failed to fetch subscription groups: {exc}",
            status=exc.status,
            code=exc.code,
        ) from exc

    products: list[Product] = []
    for group in groups:
        group_id = resource_id(group)
        if not group_id:
            continue
        try:
            subs = client.list_subscriptions(group_id)
        except ApiError as exc:
            raise ApiError(
                f"failed to fetch subscriptions for group {group_id}: {exc}",
                status=exc.status,
                code=exc.code,
            ) from exc
        products.extend(
            Product(
                id=resource_id(sub),
                name=attr_str(sub, "name"),
                product_id=attr_str(sub, "productId"),
                state=attr_str(sub, "state"),
                kind="AUTO_RENEWABLE",
                group_id=group_id,
            )
            for sub in subs
        )
    return products


# ---------- Checks ----------


def _label(product: Product) -> str:
    return product.product_id or product.name or product.id


def _validate(
    app_id: str, noun: str, products: Sequence[Product], strict: bool
) -> ProductReport:
    report = ProductReport(app_id=app_id, strict=strict, total=len(products))
    severity: Severity = "error" if strict else "warning"

    def add(check: str, product: Product, message: str) -> None:
        report.issues.append(
            ProductIssue(
                check=check,
                severity=severity,
                message=message,
                resource_id=product.id,
                product_id=product.product_id,
            )
        )

    for product in products:
        label = _label(product)
        if not product.name:
            add("name", product, f"{noun} {label}: name is empty")
        if not product.product_id:
            add("product_id", product, f"{noun} {product.id}: product ID is empty")

        state = product.state.upper()
        if state in UNSUBMITTED_STATES:
            add("state", product, f"{noun} {label} has not been submitted ({state})")
        elif state in NEEDS_ACTION_STATES:
            add("state", product, f"{noun} {label} needs developer action ({state})")

    return report


def validate_in_app_purchases(
    app_id: str, products: Sequence[Product], strict: bool = False
) -> ProductReport:
    return _validate(app_id, "in-app purchase", products, strict)


def validate_subscriptions(
    app_id: str, products: Sequence[Product], strict: bool = False
) -> ProductReport:
    return _validate(app_id, "subscription", products, strict)


__all__ = [
    "Product",
    "ProductIssue",
    "ProductReport",
    "collect_in_app_purchases",
    "collect_subscriptions",
    "validate_in_app_purchases",
    "validate_subscriptions",
]
