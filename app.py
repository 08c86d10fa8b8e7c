"""
Document Scanner - Main Streamlit Application

Photograph or scan paper documents and get flat, cleaned-up copies:
- Automatic boundary detection with manual corner refinement
- Perspective correction
- Enhancement filters (contrast, grayscale, black & white)
- Saving to S3 + DynamoDB, or to the session in demo mode
"""

import logging

import streamlit as st

from crop_editor import apply_corner_edit, clear_editor_state, render_corner_editor
from database import DocumentDatabase, LocalDocumentStore
from docscan import (
    EnhancementMode,
    ItemStatus,
    ScanOrchestrator,
    load_config,
)
from docscan.config import ScannerConfig, StorageConfig
from docscan.logging_utils import setup_logging
from image_processing import cv2_to_pil, create_thumbnail

logger = logging.getLogger("docscan.app")


# Page configuration
st.set_page_config(
    page_title="Document Scanner",
    page_icon="📄",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    .status-done {
        color: #2e7d32;
        font-size: 12px;
    }
</style>
""", unsafe_allow_html=True)

STATUS_ICONS = {
    ItemStatus.PENDING: "⏳",
    ItemStatus.PROCESSING: "⚙️",
    ItemStatus.COMPLETED: "✅",
    ItemStatus.ERROR: "⚠️",
}


def init_session_state():
    """Initialize session state variables."""
    if 'config' not in st.session_state:
        config = load_config()
        setup_logging(level=config.log_level)
        st.session_state.config = config
    if 'orchestrator' not in st.session_state:
        st.session_state.orchestrator = ScanOrchestrator(config=st.session_state.config)
    if 'store' not in st.session_state:
        st.session_state.store = None
    if 'use_local_storage' not in st.session_state:
        st.session_state.use_local_storage = True
    if 'edit_mode' not in st.session_state:
        st.session_state.edit_mode = 'corners'
    if 'last_edit_error' not in st.session_state:
        st.session_state.last_edit_error = None


def has_aws_secrets() -> bool:
    """Check if AWS secrets are configured."""
    try:
        return (
            "aws" in st.secrets
            and bool(st.secrets.aws.get("access_key_id"))
            and bool(st.secrets.aws.get("secret_access_key"))
        )
    except FileNotFoundError:
        return False


def get_aws_config(config: ScannerConfig) -> StorageConfig:
    """Get AWS configuration from secrets, falling back to the environment."""
    if has_aws_secrets():
        return StorageConfig(
            table_name=st.secrets.aws.get("table_name", config.storage.table_name),
            bucket_name=st.secrets.aws.get("s3_bucket", None),
            region_name=st.secrets.aws.get("region", config.storage.region_name),
            aws_access_key_id=st.secrets.aws.access_key_id,
            aws_secret_access_key=st.secrets.aws.secret_access_key
        )
    return config.storage


def connect_store():
    """Connect to DynamoDB + S3 when credentials exist, else use the session store."""
    if st.session_state.store is not None:
        return

    storage = get_aws_config(st.session_state.config)
    if storage.has_credentials:
        try:
            db = DocumentDatabase(
                table_name=storage.table_name,
                bucket_name=storage.bucket_name,
                region_name=storage.region_name,
                aws_access_key_id=storage.aws_access_key_id,
                aws_secret_access_key=storage.aws_secret_access_key
            )
            db.create_table_if_not_exists()
            st.session_state.store = db
            st.session_state.use_local_storage = False
            return
        except Exception as e:
            logger.exception("AWS connection failed")
            st.sidebar.error(f"AWS connection failed, using demo mode: {e}")

    st.session_state.store = LocalDocumentStore()
    st.session_state.use_local_storage = True


def sidebar():
    """Storage status and saved documents."""
    with st.sidebar:
        st.header("📄 Document Scanner")
        if st.session_state.use_local_storage:
            st.info("Demo mode: documents are kept for this session only")
        else:
            store = st.session_state.store
            st.success("Connected to AWS (DynamoDB + S3)")
            st.caption(f"Table: {store.table_name}")
            st.caption(f"Bucket: {store.bucket_name}")

        st.divider()
        documents = st.session_state.store.list_documents()
        st.subheader(f"Saved documents ({len(documents)})")
        for doc in documents:
            if doc.get('thumbnail_bytes'):
                st.image(doc['thumbnail_bytes'], caption=doc['file_name'], use_container_width=True)
            else:
                st.caption(doc['file_name'])


def upload_section(orchestrator: ScanOrchestrator):
    """Upload images and run them through the pipeline."""
    uploaded_files = st.file_uploader(
        "Choose document photos",
        type=['jpg', 'jpeg', 'png', 'webp', 'bmp', 'tif', 'tiff'],
        accept_multiple_files=True,
        key="document_uploader"
    )

    if uploaded_files and st.button("📥 Scan Documents", type="primary"):
        orchestrator.add_many((f.name, f.getvalue()) for f in uploaded_files)
        process_queue(orchestrator)
        st.rerun()


def process_queue(orchestrator: ScanOrchestrator):
    """Process pending items one at a time with a progress bar."""
    pending = orchestrator.pending_items
    if not pending:
        return

    progress = st.progress(0)
    status = st.empty()

    for i, item in enumerate(pending):
        status.text(f"Processing {item.name}...")
        orchestrator.process_next()
        progress.progress((i + 1) / len(pending))

    status.text("✅ Processing complete")


def queue_section(orchestrator: ScanOrchestrator):
    """Processing queue with per-item actions."""
    items = orchestrator.items
    if not items:
        st.caption("No documents in queue. Upload images to get started.")
        return

    completed = len(orchestrator.completed_items)
    st.subheader(f"Processing Queue ({len(items)})")
    st.caption(f"{completed} completed")

    for item in items:
        col1, col2, col3 = st.columns([1, 4, 2])

        with col1:
            preview = item.display_image
            if preview is not None:
                st.image(create_thumbnail(preview, (96, 96)))
            else:
                st.write(STATUS_ICONS[item.status])

        with col2:
            marker = "**▶** " if item.item_id == orchestrator.selected_id else ""
            st.markdown(f"{marker}`{item.name}`")
            if item.status is ItemStatus.PROCESSING:
                st.progress(item.progress / 100)
            elif item.status is ItemStatus.ERROR:
                st.caption(f"⚠️ {item.error or 'Error'}")
            elif item.status is ItemStatus.COMPLETED:
                st.markdown("<span class='status-done'>Complete</span>", unsafe_allow_html=True)
            else:
                st.caption("Waiting...")

        with col3:
            if item.status is ItemStatus.COMPLETED:
                if st.button("Edit", key=f"select_{item.item_id}"):
                    orchestrator.select(item.item_id)
                    st.rerun()
            if item.status is ItemStatus.ERROR:
                if st.button("Retry", key=f"retry_{item.item_id}"):
                    orchestrator.retry(item.item_id)
                    process_queue(orchestrator)
                    st.rerun()
            if st.button("Remove", key=f"remove_{item.item_id}"):
                orchestrator.remove(item.item_id)
                clear_editor_state(item.item_id)
                st.rerun()


def editor_section(orchestrator: ScanOrchestrator):
    """Corner editing, enhancement selection and export for the selected item."""
    item = orchestrator.selected_item
    if item is None:
        if orchestrator.items:
            st.info("Select a completed document from the queue to edit")
        return

    # Navigation
    position, total = orchestrator.position(item.item_id)
    col1, col2, col3, col4 = st.columns([1, 2, 1, 2])
    with col1:
        if st.button("← Previous", disabled=position <= 1):
            orchestrator.navigate("prev")
            st.rerun()
    with col2:
        st.markdown(f"**Document {position} of {total}**: `{item.name}`")
        if item.corners_detected:
            st.caption(f"✅ Boundary auto-detected (confidence {item.confidence:.0%})")
        else:
            st.caption("⚠️ No boundary detected - using default crop area")
    with col3:
        if st.button("Next →", disabled=position >= total):
            orchestrator.navigate("next")
            st.rerun()
    with col4:
        st.session_state.edit_mode = st.radio(
            "View",
            ["corners", "compare"],
            format_func=lambda m: "Adjust Corners" if m == "corners" else "Compare",
            horizontal=True,
            index=0 if st.session_state.edit_mode == "corners" else 1,
        )

    st.divider()

    left, right = st.columns([3, 2])

    with left:
        if st.session_state.edit_mode == "corners":
            edited = render_corner_editor(item.source_image, item.corners, key=item.item_id)
            if edited is not None and apply_corner_edit(orchestrator, item.item_id, edited):
                st.rerun()
            if st.session_state.last_edit_error:
                st.error(f"Corner edit rejected: {st.session_state.last_edit_error}")
        else:
            c1, c2 = st.columns(2)
            with c1:
                st.caption("Original")
                st.image(cv2_to_pil(item.source_image), use_container_width=True)
            with c2:
                st.caption("Scanned")
                st.image(cv2_to_pil(item.display_image), use_container_width=True)

    with right:
        modes = list(EnhancementMode)
        mode = st.radio(
            "Enhancement",
            modes,
            index=modes.index(item.enhancement),
            format_func=lambda m: m.label,
            key=f"enhancement_{item.item_id}",
        )
        if mode is not item.enhancement:
            orchestrator.set_enhancement(item.item_id, mode)
            st.rerun()

        b1, b2, b3 = st.columns(3)
        with b1:
            if st.button("🪄 Auto-Detect", key="auto_detect"):
                if orchestrator.redetect(item.item_id):
                    clear_editor_state(item.item_id)
                    st.rerun()
                else:
                    st.warning("No document boundary found")
        with b2:
            if st.button("🔄 Reset", key="reset_corners"):
                orchestrator.reset_corners(item.item_id)
                clear_editor_state(item.item_id)
                st.rerun()
        with b3:
            if st.button("📐 Full Image", key="full_image"):
                orchestrator.reset_corners(item.item_id, full_image=True)
                clear_editor_state(item.item_id)
                st.rerun()

        st.image(cv2_to_pil(item.display_image), caption="Preview", use_container_width=True)

        d1, d2 = st.columns(2)
        with d1:
            st.download_button(
                "⬇️ Download",
                data=orchestrator.export(item.item_id, "png"),
                file_name=f"scanned_{item.name.rsplit('.', 1)[0]}.png",
                mime="image/png",
            )
        with d2:
            if st.button("💾 Save", type="primary", key="save_document"):
                save_selected(orchestrator, item.item_id)


def save_selected(orchestrator: ScanOrchestrator, item_id: str):
    """Persist the selected document and drop it from the queue."""
    try:
        with st.spinner("Saving document..."):
            record = orchestrator.save(item_id, st.session_state.store)
    except Exception as e:
        logger.exception("Saving %s failed", item_id)
        st.error(f"Error saving document: {e}")
        return

    clear_editor_state(item_id)
    orchestrator.navigate("next")
    st.success(f"✅ Saved {record['file_name']}")
    st.rerun()


def main():
    init_session_state()
    connect_store()
    sidebar()

    orchestrator: ScanOrchestrator = st.session_state.orchestrator

    main_col, queue_col = st.columns([3, 1])
    with queue_col:
        queue_section(orchestrator)
    with main_col:
        with st.expander("📤 Upload Documents", expanded=orchestrator.selected_item is None):
            upload_section(orchestrator)
        editor_section(orchestrator)


main()
