# tests/property/conftest.py
"""Shared Hypothesis strategies for artifact property tests.

Generated artifacts always carry the start node and the required system
rows; the nodes in between route to a mix of existing and missing
numbers so dangling references, dead ends and orphans all show up.

Usage:
    from tests.property.conftest import artifacts

    @given(text=artifacts())
    def test_fix_is_idempotent(text: str) -> None:
        ...
"""

from __future__ import annotations

from hypothesis import strategies as st

from tests.builders import artifact, row, system_rows

# Ordinary node numbers; references may also point just past them
node_numbers = st.integers(min_value=2, max_value=400)
reference_numbers = st.one_of(node_numbers, st.integers(min_value=401, max_value=600))

words = st.text(alphabet="abcdefghijklmnopqrstuvwxyz ", min_size=1, max_size=12).map(str.strip).filter(bool)


@st.composite
def decision_row(draw: st.DrawFn, number: int) -> str:
    targets = draw(st.lists(reference_numbers, max_size=3))
    return row(
        number,
        node_type="D",
        message=draw(st.one_of(st.just(""), words)),
        next_nodes=",".join(str(target) for target in targets),
        intent=draw(st.sampled_from(["", "", "menu"])),
    )


@st.composite
def action_row(draw: st.DrawFn, number: int) -> str:
    success = draw(reference_numbers)
    what_next = draw(
        st.sampled_from(
            [
                f"true~{success}|error~99990",
                f"true~{success}",
                "",
            ]
        )
    )
    return row(
        number,
        node_type="A",
        command=draw(st.sampled_from(["", "SendInvoice", "SysAssignVariable"])),
        decision_variable=draw(st.sampled_from(["", "success"])),
        what_next=what_next,
    )


@st.composite
def artifacts(draw: st.DrawFn, *, max_nodes: int = 8) -> str:
    """Artifact text with unique node numbers around a start node."""
    numbers = draw(st.lists(node_numbers, unique=True, max_size=max_nodes))
    first = draw(reference_numbers)
    rows = [row(1, node_type="D", message="Hi", next_nodes=str(first))]
    for number in numbers:
        rows.append(draw(st.one_of(decision_row(number), action_row(number))))
    return artifact(*rows, *system_rows())
