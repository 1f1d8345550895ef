"""
Category and payment-term (TOP) trees.

Rows are stored flat with a `parent` pointer. Selection state is never
stored on nodes: it is derived from a set of selected ids.
"""
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

CHECKED = "checked"
INDETERMINATE = "indeterminate"
UNCHECKED = "unchecked"


class TreeNode(BaseModel):
    id: str
    label: str
    parent_id: Optional[str] = None
    is_header: bool = False
    children: List["TreeNode"] = []

    def to_dict(self, selected: Optional[Set[str]] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "label": self.label,
            "parent_id": self.parent_id,
            "is_header": self.is_header,
            "children": [c.to_dict(selected) for c in self.children],
        }
        if selected is not None:
            data["state"] = node_state(self, selected)
        return data


TreeNode.model_rebuild()


def dedupe_rows(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen: Set[str] = set()
    out = []
    for row in rows:
        row_id = str(row.get("id") or "")
        if not row_id or row_id in seen:
            continue
        seen.add(row_id)
        out.append(row)
    return out


def build_tree(rows: Iterable[Dict[str, Any]]) -> Tuple[List[TreeNode], Dict[str, TreeNode]]:
    """Return (roots, index). Rows whose parent is unknown become roots."""
    index: Dict[str, TreeNode] = {}
    for row in dedupe_rows(rows):
        node_id = str(row["id"])
        index[node_id] = TreeNode(
            id=node_id,
            label=str(row.get("nama") or row.get("name") or node_id),
            parent_id=str(row["parent"]) if row.get("parent") else None,
            is_header=(row.get("status_group") or 0) == 1,
        )

    roots: List[TreeNode] = []
    for node in index.values():
        parent = index.get(node.parent_id) if node.parent_id else None
        if parent is not None and parent is not node:
            parent.children.append(node)
        else:
            roots.append(node)

    def sort_rec(nodes: List[TreeNode]) -> None:
        nodes.sort(key=lambda n: n.label.lower())
        for n in nodes:
            sort_rec(n.children)

    sort_rec(roots)
    return roots, index


def node_state(node: TreeNode, selected: Set[str]) -> str:
    if not node.children:
        return CHECKED if node.id in selected else UNCHECKED

    any_checked = node.id in selected
    any_unchecked = node.id not in selected
    for child in node.children:
        state = node_state(child, selected)
        if state != UNCHECKED:
            any_checked = True
        if state != CHECKED:
            any_unchecked = True

    if any_checked and any_unchecked:
        return INDETERMINATE
    return CHECKED if any_checked else UNCHECKED


def descendants(node: TreeNode) -> List[str]:
    ids = []
    for child in node.children:
        ids.append(child.id)
        ids.extend(descendants(child))
    return ids


def apply_selection(
    node: TreeNode,
    checked: bool,
    selected: Iterable[str],
    index: Dict[str, TreeNode],
    selectable_headers: bool = False,
) -> Set[str]:
    """New selection after (un)checking a node together with its subtree."""
    result = set(selected)
    bucket = [node.id] + descendants(node)
    if checked:
        for node_id in bucket:
            n = index.get(node_id)
            if n is not None and (not n.is_header or selectable_headers):
                result.add(node_id)
    else:
        result.difference_update(bucket)
    return result


def search_tree(query: str, index: Dict[str, TreeNode]) -> Tuple[Set[str], Set[str]]:
    """Return (matched ids, ancestor ids to expand) for a label search."""
    matched: Set[str] = set()
    expanded: Set[str] = set()
    q = query.strip().lower()
    if not q:
        return matched, expanded

    for node in index.values():
        if q not in node.label.lower():
            continue
        matched.add(node.id)
        cur = node
        while cur.parent_id and cur.parent_id not in expanded:
            expanded.add(cur.parent_id)
            cur = index.get(cur.parent_id)
            if cur is None:
                break
    return matched, expanded
