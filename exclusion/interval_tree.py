from typing import Any, Iterator, Optional

from .entry import Entry
from .interval import Interval, NEG_INF


class IntervalNode:
    """Tree node holding one entry plus the AVL height and subtree max_high."""
    __slots__ = ['entry', 'left', 'right', 'parent', 'max_high', 'height']

    def __init__(self, entry: Entry):
        self.entry: Entry = entry
        self.left: Optional['IntervalNode'] = None
        self.right: Optional['IntervalNode'] = None
        self.parent: Optional['IntervalNode'] = None
        self.max_high: Any = entry.interval.high
        self.height: int = 1

    @property
    def order_key(self) -> tuple:
        return (self.entry.interval.low, self.entry.id)


class IntervalTree:
    """
    AVL tree of entries ordered by (low, id), augmented with max_high.

    Entries of a single partition key live in one tree; the index keeps one
    tree per key. Nodes are never recycled, so a node returned by insert()
    stays attached to its entry until delete() is called with it.
    """

    def __init__(self):
        self.root: Optional[IntervalNode] = None
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._size > 0

    # --- Internal Utilities ---

    def _get_height(self, node: Optional[IntervalNode]) -> int:
        return node.height if node else 0

    def _update(self, node: Optional[IntervalNode]):
        if not node: return
        node.height = 1 + max(self._get_height(node.left), self._get_height(node.right))

        m = node.entry.interval.high
        if node.left and node.left.max_high > m: m = node.left.max_high
        if node.right and node.right.max_high > m: m = node.right.max_high
        node.max_high = m

    def _replace_child(self, parent: Optional[IntervalNode], old: IntervalNode, new: Optional[IntervalNode]):
        if not parent: self.root = new
        elif parent.left is old: parent.left = new
        else: parent.right = new
        if new: new.parent = parent

    def _rotate_left(self, x: IntervalNode):
        y = x.right
        x.right = y.left
        if y.left: y.left.parent = x
        self._replace_child(x.parent, x, y)
        y.left = x
        x.parent = y
        self._update(x)
        self._update(y)

    def _rotate_right(self, y: IntervalNode):
        x = y.left
        y.left = x.right
        if x.right: x.right.parent = y
        self._replace_child(y.parent, y, x)
        x.right = y
        y.parent = x
        self._update(y)
        self._update(x)

    def _rebalance(self, node: Optional[IntervalNode]):
        while node:
            self._update(node)
            balance = self._get_height(node.left) - self._get_height(node.right)
            if balance > 1:
                if self._get_height(node.left.left) < self._get_height(node.left.right):
                    self._rotate_left(node.left)
                self._rotate_right(node)
            elif balance < -1:
                if self._get_height(node.right.right) < self._get_height(node.right.left):
                    self._rotate_right(node.right)
                self._rotate_left(node)
            node = node.parent

    # --- Public API ---

    def insert(self, entry: Entry) -> IntervalNode:
        new_node = IntervalNode(entry)
        self._size += 1
        if not self.root:
            self.root = new_node
            return new_node

        key = new_node.order_key
        curr = self.root
        parent = None
        while curr:
            parent = curr
            if key < curr.order_key: curr = curr.left
            else: curr = curr.right

        new_node.parent = parent
        if key < parent.order_key: parent.left = new_node
        else: parent.right = new_node

        self._rebalance(new_node)
        return new_node

    def delete(self, node: IntervalNode):
        """Detach node from the tree. The successor node is moved, not copied."""
        if node.left and node.right:
            succ = node.right
            while succ.left: succ = succ.left

            if succ.parent is node:
                rebalance_point = succ
            else:
                rebalance_point = succ.parent
                self._replace_child(succ.parent, succ, succ.right)
                succ.right = node.right
                succ.right.parent = succ

            self._replace_child(node.parent, node, succ)
            succ.left = node.left
            succ.left.parent = succ
        else:
            rebalance_point = node.parent
            self._replace_child(node.parent, node, node.left or node.right)

        node.left = node.right = node.parent = None
        self._size -= 1
        self._rebalance(rebalance_point)

    def find(self, entry: Entry) -> Optional[IntervalNode]:
        key = (entry.interval.low, entry.id)
        curr = self.root
        while curr:
            curr_key = curr.order_key
            if key == curr_key: return curr
            curr = curr.left if key < curr_key else curr.right
        return None

    # --- Search Methods ---

    def __iter__(self) -> Iterator[Entry]:
        """Yield all entries ascending by (low, id)."""
        def _walk(node):
            if not node: return
            yield from _walk(node.left)
            yield node.entry
            yield from _walk(node.right)
        return _walk(self.root)

    def iter_matching(self, query: Interval) -> Iterator[Entry]:
        """Lazily yield entries whose interval matches query, in (low, id) order."""
        low, high = query.low, query.high

        def _search(node):
            if not node or node.max_high < low: return
            yield from _search(node.left)
            interval = node.entry.interval
            if interval.low > high: return
            if interval.matches(query): yield node.entry
            yield from _search(node.right)
        return _search(self.root)

    def iter_overlapping(self, query: Interval) -> Iterator[Entry]:
        """Yield entries that share at least one point with query."""
        if query.is_empty:
            return iter(())
        return (e for e in self.iter_matching(query) if e.interval.overlaps(query))

    def iter_containing(self, point: Any) -> Iterator[Entry]:
        """Yield entries with low <= point < high."""
        def _search(node):
            if not node or not node.max_high > point: return
            yield from _search(node.left)
            interval = node.entry.interval
            if interval.low > point: return
            if interval.contains(point): yield node.entry
            yield from _search(node.right)
        return _search(self.root)

    # --- Debug Tool ---

    def verify_integrity(self):
        """Raises RuntimeError if ordering, AVL height or max_high properties are violated."""
        previous = [None]

        def _walk(node, parent):
            if not node: return 0, NEG_INF
            if node.parent is not parent:
                raise RuntimeError(f"Parent link violation at {node.entry}")

            left_h, left_max = _walk(node.left, node)

            if previous[0] is not None and not previous[0] < node.order_key:
                raise RuntimeError(f"Order violation at {node.entry}")
            previous[0] = node.order_key

            right_h, right_max = _walk(node.right, node)

            if abs(left_h - right_h) > 1:
                raise RuntimeError(f"AVL violation at {node.entry}")
            if node.height != 1 + max(left_h, right_h):
                raise RuntimeError(f"Height violation at {node.entry}")

            expected_max = node.entry.interval.high
            if left_max > expected_max: expected_max = left_max
            if right_max > expected_max: expected_max = right_max
            if node.max_high != expected_max:
                raise RuntimeError(f"MaxHigh violation at {node.entry}")

            return 1 + max(left_h, right_h), expected_max

        _walk(self.root, None)
