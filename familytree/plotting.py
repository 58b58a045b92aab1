from __future__ import annotations

from typing import Dict, List, Tuple

import plotly.graph_objects as go

from .tree_builder import TreeNode, TreeView

LIVING_COLOR = "#3B82F6"
DECEASED_COLOR = "#EC4899"


def layered_tree_layout(
    view: TreeView,
    layer_gap: float = 120.0,
    sibling_gap: float = 160.0,
) -> Dict[TreeNode, Tuple[float, float]]:
    """
    Deterministic top-down layout of the visible part of a tree:
    - y decreases with depth
    - visible leaves take consecutive x slots, left to right in child order
    - a parent sits centred over its visible children
    Collapsed nodes are placed but their subtrees are not.
    """
    pos: Dict[TreeNode, Tuple[float, float]] = {}
    if view.tree is None:
        return pos

    next_slot = [0]

    def assign(node: TreeNode) -> float:
        kids = node.children if view.is_expanded(node) else []
        if kids:
            xs = [assign(k) for k in kids]
            x = (xs[0] + xs[-1]) / 2.0
        else:
            x = next_slot[0] * sibling_gap
            next_slot[0] += 1
        pos[node] = (x, -node.depth * layer_gap)
        return x

    assign(view.tree)
    return pos


def _life_years(ind: dict) -> str:
    birth = (ind.get("birth_date") or "")[:4]
    death = (ind.get("death_date") or "")[:4]
    if birth and death:
        return f"{birth}–{death}"
    if birth:
        return f"{birth}–"
    if death:
        return f"–{death}"
    return "–"


def _full_name(ind: dict) -> str:
    return f"{ind.get('first_name', '')} {ind.get('last_name', '')}".strip()


def build_tree_figure(view: TreeView, layer_gap: float = 120.0) -> go.Figure:
    pos = layered_tree_layout(view, layer_gap=layer_gap)

    if not pos:
        fig = go.Figure()
        fig.update_layout(title="No family data found")
        return fig

    edge_x: List[float | None] = []
    edge_y: List[float | None] = []
    for node, (x1, y1) in pos.items():
        parent = node.parent
        if parent is None or parent not in pos:
            continue
        x0, y0 = pos[parent]
        edge_x += [x0, x1, None]
        edge_y += [y0, y1, None]

    edge_trace = go.Scatter(
        x=edge_x,
        y=edge_y,
        mode="lines",
        line=dict(width=1, color="gray"),
        hoverinfo="none",
        showlegend=False,
    )

    nodes = list(pos.keys())
    node_x = [pos[n][0] for n in nodes]
    node_y = [pos[n][1] for n in nodes]
    texts = [_full_name(n.individual) for n in nodes]
    hover_texts = []
    for n in nodes:
        ind = n.individual
        status = "Living" if ind.get("is_alive") else "Deceased"
        hidden = "" if view.is_expanded(n) or not n.children else f"<br>{len(n.children)} hidden"
        hover_texts.append(f"{_full_name(ind)}<br>{_life_years(ind)}<br>{status}{hidden}")
    colors = [LIVING_COLOR if n.individual.get("is_alive") else DECEASED_COLOR for n in nodes]
    outlines = [3 if view.is_selected(n) else 1 for n in nodes]

    node_trace = go.Scatter(
        x=node_x,
        y=node_y,
        mode="markers+text",
        text=texts,
        textposition="top center",
        hoverinfo="text",
        hovertext=hover_texts,
        marker=dict(size=18, color=colors, line=dict(width=outlines, color="#333")),
        textfont=dict(size=9),
        customdata=[n.id for n in nodes],
        showlegend=False,
    )

    xs = [xy[0] for xy in pos.values()]
    ys = [xy[1] for xy in pos.values()]
    x_min, x_max = min(xs), max(xs)
    y_min, y_max = min(ys), max(ys)
    pad_x = 0.15 * (x_max - x_min if x_max > x_min else 1)
    pad_y = 0.15 * (y_max - y_min if y_max > y_min else 1)

    fig = go.Figure(data=[edge_trace, node_trace])
    fig.update_layout(
        showlegend=False,
        hovermode="closest",
        dragmode="pan",
        autosize=True,
        margin=dict(l=0, r=0, t=0, b=0),
        plot_bgcolor="white",
        paper_bgcolor="white",
        xaxis=dict(showgrid=False, zeroline=False, showticklabels=False,
                   range=[x_min - pad_x, x_max + pad_x]),
        yaxis=dict(showgrid=False, zeroline=False, showticklabels=False,
                   range=[y_min - pad_y, y_max + pad_y]),
    )
    return fig
