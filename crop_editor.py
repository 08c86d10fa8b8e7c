"""
Corner editor for manual refinement of detected document boundaries.

Features:
- Source image preview with the current quadrilateral drawn on top
- Numeric inputs for each corner, in source-image pixel coordinates
- Returns edited corners so the caller can re-run rectification
"""

from typing import List, Optional

import cv2
import numpy as np
import streamlit as st

from docscan import DegenerateGeometryError, ScanOrchestrator
from docscan.corners import corner_labels, corners_to_list
from image_processing import fit_to_width

OVERLAY_COLOR = (80, 175, 76)  # BGR
HANDLE_RADIUS = 8


def draw_corner_overlay(
    image: np.ndarray,
    corners,
    max_width: int = 800,
) -> np.ndarray:
    """
    Draw the boundary and corner handles on a display-sized copy.

    Args:
        image: Source image (BGR or gray)
        corners: 4 corners in source coordinates, TL, TR, BR, BL
        max_width: Width the preview is scaled down to

    Returns:
        New BGR image with the overlay
    """
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    preview, scale = fit_to_width(image, max_width)
    preview = preview.copy()

    pts = np.round(np.asarray(corners, dtype=np.float32).reshape(4, 2) * scale).astype(np.int32)

    shaded = preview.copy()
    cv2.fillPoly(shaded, [pts], OVERLAY_COLOR)
    preview = cv2.addWeighted(shaded, 0.15, preview, 0.85, 0)

    cv2.polylines(preview, [pts], isClosed=True, color=OVERLAY_COLOR, thickness=2)
    for (x, y), label in zip(pts, ("TL", "TR", "BR", "BL")):
        cv2.circle(preview, (int(x), int(y)), HANDLE_RADIUS, OVERLAY_COLOR, -1)
        cv2.circle(preview, (int(x), int(y)), HANDLE_RADIUS, (255, 255, 255), 2)
        cv2.putText(
            preview, label, (int(x) + HANDLE_RADIUS + 2, int(y) - HANDLE_RADIUS),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1, cv2.LINE_AA
        )

    return preview


def render_corner_editor(
    image: np.ndarray,
    corners,
    key: str = "corner_editor",
) -> Optional[List[List[float]]]:
    """
    Render the corner editor.

    Args:
        image: Source image the corners refer to
        corners: Current corners [[x, y], ...] in TL, TR, BR, BL order
        key: Unique key for this editor instance (use the item id)

    Returns:
        Updated corner coordinates if changed, else None
    """
    height, width = image.shape[:2]
    current = corners_to_list(corners)

    st.image(draw_corner_overlay(image, current), channels="BGR", use_container_width=True)

    with st.expander("Fine-tune corner coordinates", expanded=True):
        cols = st.columns(4)
        updated = []

        for i, (label, col) in enumerate(zip(corner_labels(), cols)):
            with col:
                st.caption(label)
                x = st.number_input(
                    "X", value=float(current[i][0]),
                    min_value=0.0, max_value=float(width - 1),
                    step=1.0, key=f"{key}_{i}_x"
                )
                y = st.number_input(
                    "Y", value=float(current[i][1]),
                    min_value=0.0, max_value=float(height - 1),
                    step=1.0, key=f"{key}_{i}_y"
                )
                updated.append([x, y])

    if np.allclose(np.asarray(updated), np.asarray(current), atol=1e-3):
        return None
    return updated


def clear_editor_state(key: str):
    """Forget widget values so the inputs pick up new corners."""
    for i in range(4):
        for axis in ("x", "y"):
            st.session_state.pop(f"{key}_{i}_{axis}", None)


def apply_corner_edit(orchestrator: ScanOrchestrator, item_id: str, corners) -> bool:
    """
    Re-rectify an item with edited corners.

    The stored corners come back in canonical order, which can differ from
    the edited order, so the inputs are reset to pick them up.

    Returns:
        True if the edit was applied, False if the corners were rejected
        (the message is kept in st.session_state.last_edit_error)
    """
    try:
        orchestrator.update_corners(item_id, corners)
    except DegenerateGeometryError as e:
        st.session_state.last_edit_error = str(e)
        return False

    st.session_state.last_edit_error = None
    clear_editor_state(item_id)
    return True
