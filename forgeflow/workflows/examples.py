# forgeflow/workflows/examples.py
# Example flows, used by the demo endpoint and as fixtures.
from ..models import FlowEdge, FlowNode, FlowSpec


def hello_world() -> FlowSpec:
    return FlowSpec(
        id="hello_world",
        name="Hello World",
        nodes=[
            FlowNode(id="trigger", node_type="trigger_manual", category="trigger", label="Start"),
            FlowNode(
                id="log",
                node_type="action_log",
                label="Say hello",
                config={"message": "Hello, ForgeFlow!", "level": "info"},
            ),
        ],
        edges=[FlowEdge(source="trigger", target="log")],
    )


def greet_each(names=None) -> FlowSpec:
    """Loop over a list of names, branch on each one, then notify once."""
    return FlowSpec(
        id="greet_each",
        name="Greet each",
        nodes=[
            FlowNode(id="trigger", node_type="trigger_manual", category="trigger"),
            FlowNode(
                id="loop",
                node_type="loop_foreach",
                category="loop",
                config={"items": names if names is not None else ["ada", "grace", "linus"], "itemVar": "name"},
            ),
            FlowNode(
                id="is_ada",
                node_type="condition_if",
                category="condition",
                config={"condition": 'name == "ada"'},
            ),
            FlowNode(id="hello_ada", node_type="action_log", config={"message": "Welcome back, {{name}}"}),
            FlowNode(id="hello_other", node_type="action_log", config={"message": "Hello, {{name}} (#{{index}})"}),
            FlowNode(
                id="notify",
                node_type="action_notification",
                config={"title": "Done", "message": "Greeted everyone"},
            ),
        ],
        edges=[
            FlowEdge(source="trigger", target="loop"),
            FlowEdge(source="loop", target="is_ada", source_handle="loop"),
            FlowEdge(source="loop", target="notify", source_handle="done"),
            FlowEdge(source="is_ada", target="hello_ada", source_handle="true"),
            FlowEdge(source="is_ada", target="hello_other", source_handle="false"),
        ],
    )


EXAMPLES = {
    "hello_world": hello_world,
    "greet_each": greet_each,
}
