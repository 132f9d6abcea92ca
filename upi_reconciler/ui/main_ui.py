"""
Review Desk UI — Dark-Themed CustomTkinter Interface
----------------------------------------------------
Desktop window for reconciling client payment screenshots.

Workflow:
  1. Select screenshots / folder
  2. Process (upload + OCR + extract + client match) in the background
  3. Review the table; unmatched rows wait for the operator
  4. Confirm a row against a client (records the payment)
  5. Export the review sheet to Excel
"""

import os
import threading
from datetime import datetime
from tkinter import END, filedialog, messagebox

import customtkinter as ctk
from PIL import Image

from upi_reconciler.config import settings
from upi_reconciler.core.image_loader import load_images_from_folder
from upi_reconciler.core.ledger import WorkbookLedger
from upi_reconciler.core.models import ScreenshotStatus
from upi_reconciler.core.screenshot_service import ScreenshotService
from upi_reconciler.errors import ReconcilerError
from upi_reconciler.export.excel_exporter import export_to_excel
from upi_reconciler.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

# ─── Appearance Configuration ───────────────────────────────────────
ctk.set_appearance_mode("dark")
ctk.set_default_color_theme("blue")

DISPLAY_COLS = ['File', 'Status', 'Amount', 'UTR', 'Date', 'Payer', 'Client']

STATUS_COLORS = {
    ScreenshotStatus.CONFIRMED: ("#0d8a0d", "#4ade80"),
    ScreenshotStatus.MATCHED: ("#1a73e8", "#8ab4f8"),
    ScreenshotStatus.PROCESSED: ("#b45309", "#fbbf24"),
    ScreenshotStatus.ERROR: ("#b91c1c", "#f87171"),
}

NO_CLIENT = "— select client —"


class ReviewApp(ctk.CTk):
    """
    Main application window.
    Provides the reconciliation workflow:
        select → process → review → confirm → export.
    """

    def __init__(self, service=None):
        super().__init__()

        self.title("UPI Reconciler")
        self.geometry("1150x820")
        self.minsize(950, 700)

        # ── State ──
        self.service = service or ScreenshotService(WorkbookLedger(settings.ledger_path))
        self.selected_files = []
        self.records = []              # list[ScreenshotUpload] shown in the table
        self.selected_index = None
        self.client_names = {}         # client id → name
        self.client_var = ctk.StringVar(value=NO_CLIENT)
        self.amount_var = ctk.StringVar(value="")
        self.pending_only_var = ctk.BooleanVar(value=False)
        self.theme_var = ctk.StringVar(value="dark")

        self._create_widgets()
        self._refresh_clients()
        self._refresh_records()

        # Anything left mid-flight by the previous session
        resumed = self.service.resume_pending(on_complete=self._on_background_done)
        if resumed:
            self._log(f"Resuming {len(resumed)} unfinished screenshot(s)...")

    # ══════════════════════════════════════════════════════════════════
    #  UI CONSTRUCTION
    # ══════════════════════════════════════════════════════════════════

    def _create_widgets(self):
        main_frame = ctk.CTkFrame(self, fg_color="transparent")
        main_frame.pack(fill="both", expand=True, padx=25, pady=15)

        self._build_header(main_frame)

        controls = ctk.CTkFrame(main_frame, fg_color="transparent")
        controls.pack(fill="x", pady=(0, 8))

        left_col = ctk.CTkFrame(controls, fg_color="transparent")
        left_col.pack(side="left", fill="x", expand=True, padx=(0, 8))
        self._build_input_section(left_col)

        right_col = ctk.CTkFrame(controls, fg_color="transparent")
        right_col.pack(side="right", fill="x", expand=True, padx=(8, 0))
        self._build_confirm_section(right_col)

        self.progress_bar = ctk.CTkProgressBar(main_frame, height=6, corner_radius=3)
        self.progress_bar.pack(fill="x", pady=(5, 5))
        self.progress_bar.set(0)

        self._build_results_section(main_frame)
        self._build_status_section(main_frame)
        self._build_footer(main_frame)

    def _build_header(self, parent):
        header = ctk.CTkFrame(parent, fg_color="transparent")
        header.pack(fill="x", pady=(0, 12))

        ctk.CTkLabel(
            header,
            text="🥚",
            font=ctk.CTkFont(family="Segoe UI Emoji", size=40),
        ).pack(side="left", padx=(0, 12))

        title_block = ctk.CTkFrame(header, fg_color="transparent")
        title_block.pack(side="left", fill="x", expand=True)

        ctk.CTkLabel(
            title_block,
            text="UPI Reconciler",
            font=ctk.CTkFont(family="Segoe UI", size=24, weight="bold"),
            text_color=("#1a73e8", "#8ab4f8"),
        ).pack(anchor="w")

        ctk.CTkLabel(
            title_block,
            text="Match client payment screenshots to the farm ledger",
            font=ctk.CTkFont(family="Segoe UI", size=11),
            text_color="gray",
        ).pack(anchor="w")

        ctk.CTkSwitch(
            header,
            text="🌙",
            command=self._toggle_theme,
            onvalue="dark",
            offvalue="light",
            variable=self.theme_var,
        ).pack(side="right")

    def _build_input_section(self, parent):
        section = ctk.CTkFrame(parent, corner_radius=10)
        section.pack(fill="x", pady=(0, 8))

        ctk.CTkLabel(
            section,
            text="📥  Screenshots",
            font=ctk.CTkFont(size=13, weight="bold"),
        ).pack(anchor="w", padx=15, pady=(10, 6))

        btn_row = ctk.CTkFrame(section, fg_color="transparent")
        btn_row.pack(fill="x", padx=15)

        ctk.CTkButton(
            btn_row, text="📂 Select Images", command=self._select_images,
            width=140, height=34, corner_radius=8,
        ).pack(side="left", padx=(0, 8))

        ctk.CTkButton(
            btn_row, text="📁 Select Folder", command=self._select_folder,
            width=140, height=34, corner_radius=8,
            fg_color="transparent", border_width=2, text_color=("gray10", "gray90"),
        ).pack(side="left", padx=(0, 8))

        self.process_btn = ctk.CTkButton(
            btn_row, text="🚀  PROCESS", command=self._start_processing,
            width=130, height=34, corner_radius=8,
            font=ctk.CTkFont(size=13, weight="bold"), state="disabled",
        )
        self.process_btn.pack(side="left")

        self.files_label = ctk.CTkLabel(
            section,
            text="No files selected",
            font=ctk.CTkFont(size=11, slant="italic"),
            text_color="gray",
        )
        self.files_label.pack(anchor="w", padx=15, pady=(6, 10))

    def _build_confirm_section(self, parent):
        section = ctk.CTkFrame(parent, corner_radius=10)
        section.pack(fill="x", pady=(0, 8))

        ctk.CTkLabel(
            section,
            text="✅  Confirm Selected",
            font=ctk.CTkFont(size=13, weight="bold"),
        ).pack(anchor="w", padx=15, pady=(10, 6))

        row = ctk.CTkFrame(section, fg_color="transparent")
        row.pack(fill="x", padx=15)

        self.client_menu = ctk.CTkOptionMenu(
            row, variable=self.client_var, values=[NO_CLIENT], width=200,
        )
        self.client_menu.pack(side="left", padx=(0, 8))

        ctk.CTkEntry(
            row, textvariable=self.amount_var, placeholder_text="Amount",
            width=110, height=32,
        ).pack(side="left", padx=(0, 8))

        self.confirm_btn = ctk.CTkButton(
            row, text="Record Payment", command=self._confirm_selected,
            width=130, height=32, state="disabled",
            fg_color=("#0d8a0d", "#22c55e"), hover_color=("#0a6d0a", "#16a34a"),
        )
        self.confirm_btn.pack(side="left")

        bottom = ctk.CTkFrame(section, fg_color="transparent")
        bottom.pack(fill="x", padx=15, pady=(8, 10))

        ctk.CTkCheckBox(
            bottom, text="Only awaiting review", variable=self.pending_only_var,
            command=self._refresh_records, checkbox_width=18, checkbox_height=18,
        ).pack(side="left")

        ctk.CTkButton(
            bottom, text="📤 Export", command=self._export_results,
            width=110, height=30, fg_color="transparent", border_width=2,
            text_color=("gray10", "gray90"),
        ).pack(side="right")

    def _build_results_section(self, parent):
        self.results_frame = ctk.CTkFrame(parent, corner_radius=10)
        self.results_frame.pack(fill="both", expand=True, pady=(5, 5))

        header_row = ctk.CTkFrame(self.results_frame, fg_color="transparent")
        header_row.pack(fill="x", padx=15, pady=(10, 5))

        ctk.CTkLabel(
            header_row,
            text="📊  Screenshots  —  click a row to review",
            font=ctk.CTkFont(size=13, weight="bold"),
        ).pack(side="left")

        self.result_count_label = ctk.CTkLabel(
            header_row, text="", font=ctk.CTkFont(size=11), text_color="gray",
        )
        self.result_count_label.pack(side="right")

        content_row = ctk.CTkFrame(self.results_frame, fg_color="transparent")
        content_row.pack(fill="both", expand=True, padx=15, pady=(0, 10))

        self.thumb_frame = ctk.CTkFrame(content_row, width=180, corner_radius=8)
        self.thumb_frame.pack(side="left", fill="y", padx=(0, 10))
        self.thumb_frame.pack_propagate(False)

        self.thumb_label = ctk.CTkLabel(
            self.thumb_frame, text="Select a row\nto preview",
            font=ctk.CTkFont(size=10), text_color="gray",
        )
        self.thumb_label.pack(fill="both", expand=True, padx=8, pady=8)

        self.table_scroll = ctk.CTkScrollableFrame(content_row, corner_radius=8, height=220)
        self.table_scroll.pack(side="left", fill="both", expand=True)

    def _build_status_section(self, parent):
        log_section = ctk.CTkFrame(parent, corner_radius=10)
        log_section.pack(fill="x", pady=(5, 5))

        ctk.CTkLabel(
            log_section,
            text="📋  Activity Log",
            font=ctk.CTkFont(size=13, weight="bold"),
        ).pack(anchor="w", padx=15, pady=(10, 4))

        self.log_textbox = ctk.CTkTextbox(
            log_section, height=90, corner_radius=8,
            font=ctk.CTkFont(family="Consolas", size=11),
            state="disabled", wrap="word",
        )
        self.log_textbox.pack(fill="x", padx=15, pady=(0, 10))

        self._log("Welcome! Select payment screenshots to begin.")

    def _build_footer(self, parent):
        footer_bar = ctk.CTkFrame(parent, fg_color="transparent", height=28)
        footer_bar.pack(fill="x", pady=(4, 2))

        ctk.CTkLabel(
            footer_bar,
            text=f"Ledger: {os.path.abspath(settings.ledger_path)}",
            font=ctk.CTkFont(size=10),
            text_color=("#888888", "#888888"),
        ).pack(side="left")

    # ══════════════════════════════════════════════════════════════════
    #  TABLE
    # ══════════════════════════════════════════════════════════════════

    def _row_values(self, record):
        info = record.extracted
        return [
            record.original_name,
            record.status.value,
            f"{info.amount:,.2f}" if info.amount is not None else "",
            info.utr or "",
            info.date.strftime('%d/%m/%Y') if info.date else "",
            info.payer_name or "",
            self.client_names.get(record.matched_client_id, ""),
        ]

    def _refresh_records(self):
        records = self.service.list_all()
        if self.pending_only_var.get():
            records = [r for r in records
                       if r.status in (ScreenshotStatus.PROCESSED, ScreenshotStatus.MATCHED)]
        self.records = records
        self.selected_index = None
        self.confirm_btn.configure(state="disabled")
        self._populate_results_table()

    def _populate_results_table(self):
        for widget in self.table_scroll.winfo_children():
            widget.destroy()

        for col_idx, col_name in enumerate(DISPLAY_COLS):
            ctk.CTkLabel(
                self.table_scroll, text=col_name,
                font=ctk.CTkFont(size=11, weight="bold"),
                text_color=("#1a73e8", "#8ab4f8"), width=110, anchor="w",
            ).grid(row=0, column=col_idx, padx=2, pady=(2, 4), sticky="w")

        for row_idx, record in enumerate(self.records, start=1):
            color = STATUS_COLORS.get(record.status)
            for col_idx, value in enumerate(self._row_values(record)):
                label = ctk.CTkLabel(
                    self.table_scroll, text=value, width=110, anchor="w",
                    font=ctk.CTkFont(size=11),
                    text_color=color if col_idx == 1 and color else None,
                    cursor="hand2",
                )
                label.grid(row=row_idx, column=col_idx, padx=2, pady=1, sticky="w")
                label.bind("<Button-1>", lambda e, idx=row_idx - 1: self._on_row_select(idx))

        count = len(self.records)
        self.result_count_label.configure(text=f"{count} record{'s' if count != 1 else ''}")

    def _on_row_select(self, row_index):
        """Preview the screenshot and prefill the confirm controls."""
        record = self.records[row_index]
        self.selected_index = row_index

        try:
            pil_img = Image.open(record.path)
            pil_img.thumbnail((160, 250), Image.Resampling.LANCZOS)
            ctk_img = ctk.CTkImage(light_image=pil_img, dark_image=pil_img, size=pil_img.size)
            self.thumb_label.configure(image=ctk_img, text="")
            self.thumb_label._ctk_image = ctk_img  # keep reference
        except OSError:
            self.thumb_label.configure(image=None, text=f"Cannot preview\n{record.original_name}")

        name = self.client_names.get(record.matched_client_id)
        self.client_var.set(name or NO_CLIENT)
        amount = record.extracted.amount
        self.amount_var.set(f"{amount:.2f}" if amount is not None else "")

        can_confirm = record.status in (ScreenshotStatus.PROCESSED, ScreenshotStatus.MATCHED)
        self.confirm_btn.configure(state="normal" if can_confirm else "disabled")
        if record.error:
            self._log(f"⚠️ {record.original_name}: {record.error}")

    def _refresh_clients(self):
        clients = self.service.ledger.list_clients()
        self.client_names = {c.id: c.name for c in clients}
        self.client_menu.configure(values=[NO_CLIENT] + [c.name for c in clients])

    # ══════════════════════════════════════════════════════════════════
    #  EVENT HANDLERS
    # ══════════════════════════════════════════════════════════════════

    def _toggle_theme(self):
        ctk.set_appearance_mode(self.theme_var.get())

    def _log(self, message):
        """Append a timestamped message to the activity log."""
        self.log_textbox.configure(state="normal")
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.log_textbox.insert(END, f"[{timestamp}]  {message}\n")
        self.log_textbox.see(END)
        self.log_textbox.configure(state="disabled")

    def _select_images(self):
        files = filedialog.askopenfilenames(
            title="Select Payment Screenshots",
            filetypes=[("Images", "*.jpg *.jpeg *.png *.bmp *.webp")],
        )
        if files:
            self.selected_files = list(files)
            self._update_file_label()

    def _select_folder(self):
        folder = filedialog.askdirectory(title="Select Folder Containing Screenshots")
        if folder:
            self.selected_files = load_images_from_folder(folder)
            self._update_file_label()

    def _update_file_label(self):
        count = len(self.selected_files)
        if count > 0:
            self.files_label.configure(
                text=f"✅  {count} image{'s' if count != 1 else ''} ready",
                text_color=("#0d8a0d", "#4ade80"),
            )
            self.process_btn.configure(state="normal")
            self._log(f"Selected {count} image(s).")
        else:
            self.files_label.configure(text="No files selected", text_color="gray")
            self.process_btn.configure(state="disabled")

    # ── Processing ─────────────────────────────────────────────────

    def _start_processing(self):
        if not self.selected_files:
            messagebox.showwarning("No Files", "Please select screenshots first.")
            return

        self.process_btn.configure(state="disabled")
        self.progress_bar.set(0)
        self._log("Processing screenshots...")

        # Keep the window responsive while OCR runs
        threading.Thread(target=self._processing_thread, daemon=True).start()

    def _processing_thread(self):
        paths = list(self.selected_files)
        _, summary = self.service.process_batch(paths, progress_callback=self._update_progress)
        self.after(0, lambda: self._processing_complete(summary))

    def _update_progress(self, current, total, message):
        progress = current / total
        self.after(0, lambda: self.progress_bar.set(progress))
        if total <= 5 or current % 5 == 0 or current == total:
            self.after(0, lambda: self._log(f"[{current}/{total}] {message}"))

    def _processing_complete(self, summary):
        self.process_btn.configure(state="normal")
        self._log(
            f"Done — ✅ {summary['matched']} matched"
            f" · 🕵️ {summary['unmatched']} awaiting review"
            f" · ⏭️ {summary['duplicates']} duplicates"
            f" · ❌ {summary['failed']} failed"
        )
        for fname, err in summary['errors']:
            self._log(f"  ⚠️ {fname}: {err}")
        self._refresh_records()

    def _on_background_done(self, screenshot_id, record, error):
        """Called from a worker thread by ScreenshotService."""
        if error is not None:
            self.after(0, lambda: self._log(f"❌ {error}"))
        self.after(0, self._refresh_records)

    # ── Confirmation ───────────────────────────────────────────────

    def _confirm_selected(self):
        if self.selected_index is None:
            return
        record = self.records[self.selected_index]

        name = self.client_var.get()
        client_id = next((cid for cid, cname in self.client_names.items() if cname == name), None)
        if client_id is None:
            messagebox.showwarning("No Client", "Choose the client this payment came from.")
            return

        try:
            amount = float(self.amount_var.get().replace(',', '')) if self.amount_var.get().strip() else None
        except ValueError:
            messagebox.showwarning("Invalid Amount", "Enter the amount as a number, e.g. 1500.00")
            return

        try:
            payment = self.service.confirm_payment(record.id, client_id=client_id, amount=amount)
        except ReconcilerError as e:
            self._log(f"❌ {e}")
            messagebox.showerror("❌ Error", str(e))
            return

        self._log(f"✅ Recorded {payment.amount:,.2f} from {name} ({record.original_name})")
        self._refresh_records()

    # ── Export ─────────────────────────────────────────────────────

    def _export_results(self):
        if not self.records:
            messagebox.showwarning("No Data", "Nothing to export yet.")
            return

        file_path = filedialog.asksaveasfilename(
            defaultextension=".xlsx",
            filetypes=[("Excel files", "*.xlsx"), ("All files", "*.*")],
            initialfile="payment_review.xlsx",
            title="Save Review Sheet As",
        )
        if not file_path:
            return

        success, msg = export_to_excel(self.records, file_path, client_names=self.client_names)
        if success:
            self._log(f"✅ {msg}")
            messagebox.showinfo("✅ Success", msg)
        else:
            self._log(f"❌ {msg}")
            messagebox.showerror("❌ Error", msg)


def main():
    setup_logging()
    app = ReviewApp()
    app.mainloop()
