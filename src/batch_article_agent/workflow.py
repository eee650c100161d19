# LangGraph workflow for article generation
# Defines the fixed, ordered phase sequence run for every keyword

from langgraph.graph import END, StateGraph

from batch_article_agent.nodes import (
    ArticleState,
    analyze_node,
    fact_check_node,
    image_node,
    outline_node,
    write_node,
    x_posts_node,
)
from batch_article_agent.state import ProcessStep

# Node name -> phase it reports, in execution order
PHASE_NODES: list[tuple[str, ProcessStep]] = [
    ("analyze", ProcessStep.ANALYZING),
    ("outline", ProcessStep.OUTLINING),
    ("write", ProcessStep.WRITING),
    ("fact_check", ProcessStep.FACT_CHECKING),
    ("image", ProcessStep.GENERATING_IMAGE),
    ("x_posts", ProcessStep.GENERATING_X_POSTS),
]

_NODE_FUNCTIONS = {
    "analyze": analyze_node,
    "outline": outline_node,
    "write": write_node,
    "fact_check": fact_check_node,
    "image": image_node,
    "x_posts": x_posts_node,
}


def create_workflow() -> StateGraph:
    """Create the article workflow graph (uncompiled).

    analyze -> outline -> write -> fact_check -> image -> x_posts -> END
    """
    workflow = StateGraph(ArticleState)

    for name, _ in PHASE_NODES:
        workflow.add_node(name, _NODE_FUNCTIONS[name])

    names = [name for name, _ in PHASE_NODES]
    workflow.set_entry_point(names[0])
    for current, following in zip(names, names[1:]):
        workflow.add_edge(current, following)
    workflow.add_edge(names[-1], END)

    return workflow
