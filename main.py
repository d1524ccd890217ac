import io
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from tkinter import filedialog

import customtkinter as ctk
from PIL import Image

import config
import document_export
from ai_pipeline.ocr import extract_text
from capture import CameraError, CameraSession, select_files
from jobs import ErrorState, JobOrchestrator, Notification, Notifier, ResultCollection

# =====================================================
# Global configuration
# =====================================================

# UI
ctk.set_appearance_mode("System")
ctk.set_default_color_theme("green")

THUMBNAIL_SIZE = (96, 96)
PREVIEW_SIZE = (480, 270)
PREVIEW_INTERVAL_MS = 33
TOAST_MS = 3500

NO_TEXT_TO_EXPORT = "No text to export."
EXPORT_FAILED_MESSAGE = "Failed to generate DOCX file."


# =====================================================
# Logger
# =====================================================
def setup_logger() -> logging.Logger:
    """Configure application logger with rotation."""
    log_dir = Path.home() / ".text_capture" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "text_capture.log"

    logger = logging.getLogger("text_capture")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    if not logger.handlers:
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.LOG_MAX_MB * 1024 * 1024,
            backupCount=config.LOG_BACKUPS,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        console = logging.StreamHandler()
        console.setLevel(logging.WARNING)
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.debug("Logger initialized")
    return logger


logger = setup_logger()


# =====================================================
# Core logic
# =====================================================
class TextCaptureSession:
    """Session state and actions without UI."""

    def __init__(
        self,
        extract: Callable[[str], str] = extract_text,
        notify: Optional[Notifier] = None,
        on_change: Optional[Callable[[], None]] = None,
        camera: Optional[CameraSession] = None,
    ):
        self.notify = notify or (lambda notification: None)
        self.on_change = on_change or (lambda: None)
        self.collection = ResultCollection()
        self.errors = ErrorState()
        self.orchestrator = JobOrchestrator(
            self.collection,
            self.errors,
            extract,
            notify=lambda notification: self.notify(notification),
            on_change=lambda: self.on_change(),
        )
        self.camera = camera or CameraSession()
        self.is_exporting = False

    @property
    def error_message(self) -> str:
        return self.errors.message

    @property
    def is_extracting(self) -> bool:
        return self.orchestrator.is_extracting

    def add_files(self, paths: Iterable) -> list[threading.Thread]:
        """
        Validate files and dispatch text extraction for each accepted one.

        Args:
            paths: Selected file paths.

        Returns:
            Worker threads started for the accepted files.
        """
        self.cancel_camera()
        entries, errors = select_files(paths)
        if entries:
            self.errors.clear()
        if errors:
            self.errors.set("\n".join(errors))

        workers = []
        for entry in entries:
            worker = self.orchestrator.dispatch(entry)
            if worker is not None:
                workers.append(worker)
        self.on_change()
        return workers

    def open_camera(self) -> bool:
        """Start the live camera stream; False if access failed."""
        try:
            self.camera.start()
        except CameraError as exc:
            self.errors.set(str(exc))
            self.notify(
                Notification(
                    "Camera Access Denied",
                    "Please enable camera permissions in your system settings.",
                    destructive=True,
                )
            )
            self.on_change()
            return False
        self.errors.clear()
        self.on_change()
        return True

    def capture_from_camera(self) -> Optional[threading.Thread]:
        """Capture the current frame and dispatch it for extraction."""
        if not self.camera.is_active or not self.camera.has_permission:
            return None
        try:
            entry = self.camera.capture()
        except CameraError as exc:
            logger.exception("Capture failed: %s", exc)
            self.errors.set(str(exc))
            self.on_change()
            return None

        self.errors.clear()
        worker = self.orchestrator.dispatch(entry)
        self.on_change()
        return worker

    def cancel_camera(self) -> None:
        self.camera.release()

    def remove_at(self, index: int) -> None:
        self.collection.remove_at(index)
        self.on_change()

    def clear_all(self) -> None:
        """Drop every image and result and release the camera."""
        self.orchestrator.reset()
        self.errors.clear()
        self.camera.release()
        logger.info("Session cleared")
        self.on_change()

    def copy(self, index: int, clipboard: Callable[[str], None]) -> bool:
        if self.collection.copy(index, clipboard):
            self.notify(Notification("Copied", f"Text from image {index + 1} copied to clipboard."))
            return True
        self.notify(
            Notification("Copy Failed", "Could not copy the text to the clipboard.", destructive=True)
        )
        return False

    def export_all(self, filename) -> bool:
        """
        Export every extracted text to one DOCX file.

        Args:
            filename: Destination path.

        Returns:
            True if the file was written.
        """
        texts = self.collection.texts
        if not texts:
            self.errors.set(NO_TEXT_TO_EXPORT)
            self.on_change()
            return False

        self.is_exporting = True
        try:
            ok = document_export.export_all(texts, filename)
        finally:
            self.is_exporting = False

        if not ok:
            self.errors.set(EXPORT_FAILED_MESSAGE)
            self.notify(
                Notification("Export Failed", "Could not export the text to DOCX.", destructive=True)
            )
        self.on_change()
        return ok


# =====================================================
# GUI
# =====================================================
def make_ctk_image(image: Image.Image, max_size: tuple[int, int]) -> ctk.CTkImage:
    """Scale a Pillow image to fit max_size and wrap it for customtkinter."""
    image = image.copy()
    image.thumbnail(max_size)
    return ctk.CTkImage(light_image=image, dark_image=image, size=image.size)


class ToastWindow(ctk.CTkToplevel):
    """Short-lived popup showing a notification."""

    def __init__(self, parent, notification: Notification):
        super().__init__(parent)
        self.title(notification.title)
        self.geometry("360x120")
        self.resizable(False, False)

        color = "#c0392b" if notification.destructive else None
        ctk.CTkLabel(self, text=notification.title, font=("Segoe UI", 15, "bold"), text_color=color).pack(
            pady=(14, 4)
        )
        ctk.CTkLabel(self, text=notification.description, wraplength=330, justify="left").pack(padx=12)
        self.after(TOAST_MS, self.destroy)


class TextCaptureApp(ctk.CTk):
    """Main window: load or photograph images and extract their text."""

    def __init__(self, session: Optional[TextCaptureSession] = None):
        super().__init__()
        self.title("Text Capture Pro")
        self.geometry("760x860")
        self.minsize(620, 600)

        self.session = session or TextCaptureSession()
        self.session.notify = self.notify_safe
        self.session.on_change = self.refresh_safe

        self._images: list[ctk.CTkImage] = []
        self._preview_job: Optional[str] = None
        self._preview_image: Optional[ctk.CTkImage] = None
        self._closing = False

        ctk.CTkLabel(self, text="Extract Text from Images", font=("Segoe UI", 22, "bold")).pack(pady=(20, 4))
        ctk.CTkLabel(
            self,
            text=f"Upload or capture images containing {config.OCR_LANGUAGE} text and we will extract it for you.",
            wraplength=640,
        ).pack(pady=(0, 12))

        # Source buttons
        self.source_frame = ctk.CTkFrame(self, fg_color="transparent")
        self.source_frame.pack(pady=6)
        self.upload_button = ctk.CTkButton(
            self.source_frame, text="📁 Upload Images", command=self.select_files, width=220
        )
        self.upload_button.grid(row=0, column=0, padx=8)
        self.camera_button = ctk.CTkButton(
            self.source_frame, text="📷 Use Camera", command=self.enable_camera, width=220
        )
        self.camera_button.grid(row=0, column=1, padx=8)

        # Camera feed (hidden until enabled)
        self.camera_frame = ctk.CTkFrame(self)
        self.preview_label = ctk.CTkLabel(self.camera_frame, text="Requesting camera access...")
        self.preview_label.pack(pady=8, padx=8)
        camera_buttons = ctk.CTkFrame(self.camera_frame, fg_color="transparent")
        camera_buttons.pack(pady=(0, 8))
        self.capture_button = ctk.CTkButton(
            camera_buttons, text="Capture", command=self.capture_image, state="disabled", width=180
        )
        self.capture_button.grid(row=0, column=0, padx=6)
        ctk.CTkButton(camera_buttons, text="Cancel", command=self.cancel_camera, width=180).grid(
            row=0, column=1, padx=6
        )

        # Status + errors
        self.status_label = ctk.CTkLabel(self, text="", font=("Segoe UI", 14))
        self.status_label.pack(pady=(10, 0))
        self.error_label = ctk.CTkLabel(self, text="", text_color="#c0392b", wraplength=640, justify="left")
        self.error_label.pack(pady=(4, 6))

        # Results
        self.results_frame = ctk.CTkScrollableFrame(self, label_text="Extracted Texts")
        self.results_frame.pack(pady=6, padx=16, fill="both", expand=True)

        # Actions
        actions = ctk.CTkFrame(self, fg_color="transparent")
        actions.pack(pady=10)
        self.export_button = ctk.CTkButton(
            actions, text="⬇ Download All as DOCX", command=self.export_docx, fg_color="#3874f2", width=220
        )
        self.export_button.grid(row=0, column=0, padx=8)
        self.clear_button = ctk.CTkButton(actions, text="Clear All", command=self.clear_all, width=140)
        self.clear_button.grid(row=0, column=1, padx=8)

        ctk.CTkLabel(
            self,
            text="For best results, use clear images with well-lit text.",
            font=("Segoe UI", 11),
        ).pack(pady=(0, 12))

        self.protocol("WM_DELETE_WINDOW", self.on_close)
        self.refresh()

    # ----- thread-safe hooks -----
    def refresh_safe(self) -> None:
        """Schedule a re-render on the Tk main loop."""
        if self._closing:
            return
        self.after(0, self.refresh)

    def notify_safe(self, notification: Notification) -> None:
        """Show a toast from any thread."""
        if self._closing:
            return
        self.after(0, lambda: ToastWindow(self, notification))

    def clipboard_write(self, text: str) -> None:
        self.clipboard_clear()
        self.clipboard_append(text)
        self.update()

    # ----- actions -----
    def select_files(self) -> None:
        """Ask user to pick one or more images."""
        patterns = " ".join(f"*{ext}" for ext in sorted(config.IMAGE_EXTENSIONS))
        paths = filedialog.askopenfilenames(
            title="Select images", filetypes=[("Images", patterns), ("All files", "*.*")]
        )
        if paths:
            self._hide_camera()
            self.session.add_files(paths)

    def enable_camera(self) -> None:
        self.camera_frame.pack(after=self.source_frame, pady=6, padx=16, fill="x")
        self.preview_label.configure(text="Requesting camera access...", image=None)
        self.capture_button.configure(state="disabled")
        self.update_idletasks()

        if self.session.open_camera():
            self.capture_button.configure(state="normal")
            self._update_preview()
        else:
            self._hide_camera()

    def _update_preview(self) -> None:
        """Draw the latest camera frame and reschedule while the stream runs."""
        if not self.session.camera.is_active:
            return
        try:
            frame = self.session.camera.preview_image()
        except CameraError as exc:
            logger.warning("Preview frame unavailable: %s", exc)
        else:
            image = make_ctk_image(frame, PREVIEW_SIZE)
            self._preview_image = image
            self.preview_label.configure(image=image, text="")
        self._preview_job = self.after(PREVIEW_INTERVAL_MS, self._update_preview)

    def capture_image(self) -> None:
        self.session.capture_from_camera()
        self._hide_camera()

    def cancel_camera(self) -> None:
        self.session.cancel_camera()
        self._hide_camera()

    def _hide_camera(self) -> None:
        if self._preview_job is not None:
            self.after_cancel(self._preview_job)
            self._preview_job = None
        self.camera_frame.pack_forget()

    def copy_text(self, index: int) -> None:
        self.session.copy(index, self.clipboard_write)

    def remove_result(self, index: int) -> None:
        self.session.remove_at(index)

    def clear_all(self) -> None:
        self._hide_camera()
        self.session.clear_all()

    def export_docx(self) -> None:
        """Ask where to save and export in a background thread."""
        if len(self.session.collection) == 0:
            self.session.export_all(None)
            return

        desktop = Path.home() / "Desktop"
        initial_dir = desktop if desktop.exists() else Path.home()
        suggested = document_export.default_export_path(initial_dir)
        filename = filedialog.asksaveasfilename(
            title="Save DOCX",
            initialdir=str(initial_dir),
            initialfile=suggested.name,
            defaultextension=".docx",
            filetypes=[("Word document", "*.docx")],
        )
        if not filename:
            return

        self._set_controls("disabled")
        self.export_button.configure(text="Exporting...")

        def run():
            try:
                if self.session.export_all(filename):
                    self.notify_safe(Notification("Export Complete", f"Saved to {filename}"))
            finally:
                self.after(0, self._export_finished)

        threading.Thread(target=run, daemon=True).start()

    def _export_finished(self) -> None:
        self.export_button.configure(text="⬇ Download All as DOCX")
        self._set_controls("normal")

    def _set_controls(self, state: str) -> None:
        for button in (self.upload_button, self.camera_button, self.export_button, self.clear_button):
            button.configure(state=state)

    # ----- rendering -----
    def refresh(self) -> None:
        """Re-render status, error and result rows from session state."""
        outstanding = self.session.orchestrator.outstanding
        if outstanding:
            self.status_label.configure(
                text=f"Processing {outstanding} image(s)... This may take a few moments."
            )
        else:
            self.status_label.configure(text="")
        self.error_label.configure(text=self.session.error_message)

        for child in self.results_frame.winfo_children():
            child.destroy()
        self._images.clear()

        for index, result in enumerate(self.session.collection.results):
            self._build_row(index, result)

        if not self.session.is_exporting:
            state = "normal" if len(self.session.collection) else "disabled"
            self.export_button.configure(state=state)

    def _build_row(self, index: int, result) -> None:
        row = ctk.CTkFrame(self.results_frame)
        row.pack(fill="x", pady=6, padx=4)
        row.grid_columnconfigure(1, weight=1)

        try:
            thumbnail = make_ctk_image(Image.open(io.BytesIO(result.entry.data)), THUMBNAIL_SIZE)
        except Exception:
            logger.warning("Cannot render thumbnail for %s", result.entry.name)
            ctk.CTkLabel(row, text=result.entry.name, width=96).grid(row=0, column=0, rowspan=2, padx=6)
        else:
            self._images.append(thumbnail)
            ctk.CTkLabel(row, image=thumbnail, text="").grid(row=0, column=0, rowspan=2, padx=6, pady=6)

        header = ctk.CTkFrame(row, fg_color="transparent")
        header.grid(row=0, column=1, sticky="ew", padx=6, pady=(6, 0))
        label = document_export.entry_header(index + 1)
        if not result.succeeded:
            label += " (failed)"
        ctk.CTkLabel(header, text=label, font=("Segoe UI", 13, "bold")).pack(side="left")
        ctk.CTkButton(header, text="Remove", width=70, command=lambda i=index: self.remove_result(i)).pack(
            side="right", padx=(4, 0)
        )
        ctk.CTkButton(header, text="Copy", width=70, command=lambda i=index: self.copy_text(i)).pack(side="right")

        textbox = ctk.CTkTextbox(row, height=140, wrap="word")
        textbox.grid(row=1, column=1, sticky="ew", padx=6, pady=6)
        textbox.tag_config("text", justify="right" if config.EXPORT_RTL else "left")
        textbox.insert("1.0", result.text, "text")
        textbox.configure(state="disabled")

    def on_close(self) -> None:
        """Release the camera and close app."""
        self._closing = True
        self._hide_camera()
        self.session.cancel_camera()
        self.destroy()


# =====================================================
# Main
# =====================================================
if __name__ == "__main__":
    app = TextCaptureApp()
    app.mainloop()
