"""
Workflow templates

Pre-built workflows seeded into a fresh store so the dashboard has
something to simulate.
"""

from typing import Any, Dict, List, Tuple

from flowstudio.graph import Graph, NodeKind

SAMPLE_INVENTORY_EVENT: Dict[str, Any] = {
    "sku": "SKU-12345",
    "inventory": 6,
    "forecast": 80,
}


def create_auto_reorder_workflow() -> Graph:
    """Auto-reorder on low inventory: alert and reorder when stock runs low, log otherwise."""
    graph = Graph()
    graph, trigger = graph.with_node(
        NodeKind.TRIGGER,
        "SAP Inventory Change",
        configured=True,
        description="Monitor: Product SKU-12345",
        config={
            "triggerType": "event",
            "eventName": "inventory.changed",
            "payload": dict(SAMPLE_INVENTORY_EVENT),
        },
    )
    graph, check = graph.with_node(
        NodeKind.CONDITION,
        "Check Thresholds",
        configured=True,
        description="Inventory < 10 AND Forecast > 50",
        config={"conditionType": "custom", "expression": "inventory < 10 and forecast > 50"},
    )
    graph, alert = graph.with_node(
        NodeKind.ACTION,
        "Send Slack Alert",
        configured=True,
        description="#ops-alerts: Low inventory alert",
        config={"actionType": "slack", "channel": "#ops-alerts"},
    )
    graph, reorder = graph.with_node(
        NodeKind.ACTION,
        "Create Salesforce Order",
        configured=True,
        description="Account: Auto-supplier, Qty: 50",
        config={"actionType": "http_request", "method": "POST", "url": "https://salesforce.example/orders"},
    )
    graph, log = graph.with_node(
        NodeKind.ACTION,
        "Log to Snowflake",
        configured=True,
        description="Table: inventory_events",
        config={"actionType": "database", "table": "inventory_events"},
    )

    graph, _ = graph.add_edge(trigger.id, check.id)
    graph, _ = graph.add_edge(check.id, alert.id, "Yes")
    graph, _ = graph.add_edge(check.id, log.id, "No")
    graph, _ = graph.add_edge(alert.id, reorder.id)
    return graph


def create_approval_workflow() -> Graph:
    """Webhook-triggered approval routed by amount."""
    graph = Graph()
    graph, hook = graph.with_node(
        NodeKind.TRIGGER,
        "Expense Submitted",
        configured=True,
        config={"triggerType": "webhook", "payload": {"amount": 420}},
    )
    graph, check = graph.with_node(
        NodeKind.CONDITION,
        "Amount Over Limit",
        configured=True,
        config={"conditionType": "comparison", "field": "amount", "operator": "greater_than", "value": 1000},
    )
    graph, escalate = graph.with_node(
        NodeKind.ACTION,
        "Email Finance",
        configured=True,
        config={"actionType": "email", "to": "finance@example.com"},
    )
    graph, approve = graph.with_node(
        NodeKind.ACTION,
        "Auto Approve",
        configured=True,
        config={"actionType": "transform", "set": {"approved": True}},
    )
    graph, _ = graph.add_edge(hook.id, check.id)
    graph, _ = graph.add_edge(check.id, escalate.id, "Yes")
    graph, _ = graph.add_edge(check.id, approve.id, "No")
    return graph


def default_templates() -> List[Tuple[str, str, Graph]]:
    return [
        ("Auto-Reorder Low Inventory", "Reorder stock when inventory falls below threshold",
         create_auto_reorder_workflow()),
        ("Expense Approval", "Escalate large expenses, approve the rest",
         create_approval_workflow()),
    ]
