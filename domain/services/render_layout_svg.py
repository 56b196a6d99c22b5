from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass

from domain.models import LayoutPlan, PositionedNode

SVG_NAMESPACE = "http://www.w3.org/2000/svg"
ARROW_MARKER_ID = "process-arrow"


@dataclass(frozen=True)
class SvgStyle:
    ink_color: str = "#0F172A"
    font_size: int = 20
    font_weight: int = 600
    stroke_width: float = 2.0
    edge_opacity: float = 0.7
    action_corner_radius: float = 24.0


def _num(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"


class LayoutSvgRenderer:
    def __init__(self, style: SvgStyle | None = None) -> None:
        self.style = style or SvgStyle()

    def render(self, plan: LayoutPlan) -> str:
        root = ET.Element(
            "svg",
            {
                "xmlns": SVG_NAMESPACE,
                "viewBox": f"0 0 {_num(plan.canvas.width)} {_num(plan.canvas.height)}",
                "width": _num(plan.canvas.width),
                "height": _num(plan.canvas.height),
                "role": "img",
            },
        )
        self._build_defs(root)
        for edge in plan.edges:
            ET.SubElement(
                root,
                "path",
                {
                    "d": edge.path,
                    "fill": "none",
                    "stroke": self.style.ink_color,
                    "stroke-width": _num(self.style.stroke_width),
                    "marker-end": f"url(#{ARROW_MARKER_ID})",
                    "opacity": _num(self.style.edge_opacity),
                    "data-source": edge.source_id,
                    "data-target": edge.target_id,
                },
            )
        for node in plan.nodes:
            self._build_node(root, node, plan.line_height)
        return ET.tostring(root, encoding="unicode")

    def _build_defs(self, root: ET.Element) -> None:
        defs = ET.SubElement(root, "defs")
        marker = ET.SubElement(
            defs,
            "marker",
            {
                "id": ARROW_MARKER_ID,
                "viewBox": "0 0 12 12",
                "refX": "6",
                "refY": "6",
                "markerWidth": "10",
                "markerHeight": "10",
                "orient": "auto",
            },
        )
        ET.SubElement(marker, "path", {"d": "M0 0L12 6L0 12Z", "fill": self.style.ink_color})

    def _build_node(self, root: ET.Element, node: PositionedNode, line_height: float) -> None:
        group = ET.SubElement(root, "g", {"data-step-id": node.step_id, "data-type": node.step_type})
        shape_attrs = {
            "fill": node.fill,
            "stroke": node.stroke,
            "stroke-width": _num(self.style.stroke_width),
        }
        cx, cy = node.center.x, node.center.y
        width, height = node.size.width, node.size.height

        if node.step_type == "decision":
            points = " ".join(
                f"{_num(x)},{_num(y)}"
                for x, y in (
                    (cx, cy - height / 2),
                    (cx + width / 2, cy),
                    (cx, cy + height / 2),
                    (cx - width / 2, cy),
                )
            )
            ET.SubElement(group, "polygon", {"points": points, **shape_attrs})
        elif node.step_type == "action":
            ET.SubElement(
                group,
                "rect",
                {
                    "x": _num(cx - width / 2),
                    "y": _num(cy - height / 2),
                    "width": _num(width),
                    "height": _num(height),
                    "rx": _num(self.style.action_corner_radius),
                    **shape_attrs,
                },
            )
        else:
            ET.SubElement(
                group,
                "ellipse",
                {
                    "cx": _num(cx),
                    "cy": _num(cy),
                    "rx": _num(width / 2),
                    "ry": _num(height / 2),
                    **shape_attrs,
                },
            )

        text = ET.SubElement(
            group,
            "text",
            {
                "x": _num(cx),
                "y": _num(cy),
                "text-anchor": "middle",
                "dominant-baseline": "middle",
                "font-size": str(self.style.font_size),
                "font-weight": str(self.style.font_weight),
                "fill": self.style.ink_color,
            },
        )
        block_offset = (len(node.lines) - 1) * line_height / 2
        for index, line in enumerate(node.lines):
            if index == 0:
                dy = -block_offset if len(node.lines) > 1 else 0.0
            else:
                dy = line_height
            tspan = ET.SubElement(text, "tspan", {"x": _num(cx), "dy": _num(dy)})
            tspan.text = line


def render_layout_svg(plan: LayoutPlan, style: SvgStyle | None = None) -> str:
    return LayoutSvgRenderer(style).render(plan)
