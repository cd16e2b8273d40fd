"""Closed status sets for each work item kind and the canonical status graph."""

from __future__ import annotations

from enum import StrEnum

from app.workitems.errors import InvalidStatusError


class WorkItemKind(StrEnum):
    LEAD = "lead"
    ORDER = "order"


class LeadStatus(StrEnum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    WON = "won"
    LOST = "lost"


class OrderStatus(StrEnum):
    OPEN = "öppen_order"
    BOOKED_CONFIRMED = "bokad_bekräftad"
    NOT_COMPLETED = "ej_slutfört"
    READY_TO_INVOICE = "redo_fakturera"
    INVOICED = "fakturerad"
    CANCELLED_BY_CUSTOMER = "avbokad_kund"


WorkItemStatus = LeadStatus | OrderStatus

STATUS_ENUMS: dict[WorkItemKind, type[LeadStatus] | type[OrderStatus]] = {
    WorkItemKind.LEAD: LeadStatus,
    WorkItemKind.ORDER: OrderStatus,
}

STATUS_LABELS: dict[WorkItemStatus, str] = {
    LeadStatus.NEW: "Ny",
    LeadStatus.CONTACTED: "Kontaktad",
    LeadStatus.QUALIFIED: "Kvalificerad",
    LeadStatus.WON: "Vunnen",
    LeadStatus.LOST: "Förlorad",
    OrderStatus.OPEN: "Öppen order",
    OrderStatus.BOOKED_CONFIRMED: "Bokad och bekräftad",
    OrderStatus.NOT_COMPLETED: "Ej slutfört",
    OrderStatus.READY_TO_INVOICE: "Redo att fakturera",
    OrderStatus.INVOICED: "Fakturerad",
    OrderStatus.CANCELLED_BY_CUSTOMER: "Avbokad av kund",
}

KIND_LABELS: dict[WorkItemKind, str] = {
    WorkItemKind.LEAD: "Lead",
    WorkItemKind.ORDER: "Order",
}

DEEP_LINK_TEMPLATES: dict[WorkItemKind, str] = {
    WorkItemKind.LEAD: "/leads?highlight={item_id}",
    WorkItemKind.ORDER: "/ordrar?highlight={item_id}",
}


def ordered_statuses(kind: WorkItemKind) -> list[WorkItemStatus]:
    return list(STATUS_ENUMS[kind])


def initial_status(kind: WorkItemKind) -> WorkItemStatus:
    return ordered_statuses(kind)[0]


def parse_status(kind: WorkItemKind, raw: str | WorkItemStatus) -> WorkItemStatus:
    """Resolve a raw value into the status enum of ``kind``.

    Members of another kind's enum are rejected even when their string values
    would otherwise be accepted.
    """
    enum_type = STATUS_ENUMS[kind]
    if isinstance(raw, (LeadStatus, OrderStatus)):
        if isinstance(raw, enum_type):
            return raw
        raise InvalidStatusError(kind.value, str(raw))
    try:
        return enum_type(raw)
    except ValueError:
        raise InvalidStatusError(kind.value, str(raw)) from None


def status_label(status: WorkItemStatus) -> str:
    return STATUS_LABELS[status]


def status_graph(kind: WorkItemKind) -> dict[WorkItemStatus, list[WorkItemStatus]]:
    # Every status may move to every other one; policy guards belong to callers.
    statuses = ordered_statuses(kind)
    return {source: [target for target in statuses if target != source] for source in statuses}


def deep_link(kind: WorkItemKind, item_id: object) -> str:
    return DEEP_LINK_TEMPLATES[kind].format(item_id=item_id)
