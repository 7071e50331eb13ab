import logging
import threading
from tkinter import messagebox

import customtkinter as ctk

from . import jira
from .duration import format_duration
from .badge import BadgeNotifier
from .errors import (
    PermissionCheckFailed,
    PermissionDenied,
    SessionBusy,
    SubmissionFailed,
    ValidationFailed,
)
from .session import TimerSession

logger = logging.getLogger(__name__)

TERMINAL_GREEN = "#32CD32"
TERMINAL_GREEN_BRIGHT = "#7FFF00"
BACKGROUND_COLOR = "#111111"
WIDGET_BACKGROUND = "#222222"
ROW_ALT_BACKGROUND = "#282828"
BORDER_COLOR = TERMINAL_GREEN
HOVER_COLOR_BTN = "#333333"
TEXT_COLOR_NORMAL = TERMINAL_GREEN
TEXT_COLOR_DIM = "#777777"
ERROR_RED = "#CC0000"
STATUS_GREEN = "#00AA00"

FONT_FAMILY_MONO = "Courier New"
FONT_MONO_NORMAL = (FONT_FAMILY_MONO, 13)
FONT_MONO_BOLD = (FONT_FAMILY_MONO, 13, "bold")
FONT_MONO_LARGE = (FONT_FAMILY_MONO, 17)
FONT_MONO_XLARGE = (FONT_FAMILY_MONO, 22, "bold")
FONT_MONO_SMALL = (FONT_FAMILY_MONO, 11)

TICK_INTERVAL_MS = 1000
SECTION_TITLES = {
    "pinned": "// PINNED",
    "in_progress": "// IN PROGRESS",
    "done": "// DONE (7d)",
}


class BadgeLabel(ctk.CTkLabel):
    def __init__(self, master, root):
        super().__init__(master, text="", font=FONT_MONO_BOLD, corner_radius=4, width=40,
                         fg_color="transparent", text_color=BACKGROUND_COLOR)
        self.root = root

    # store listeners can fire on worker threads
    def set_on(self, text, color):
        self.root.after(0, self._show, f" {text} ", color)

    def clear(self):
        self.root.after(0, self._show, "", "transparent")

    def _show(self, text, color):
        if self.winfo_exists():
            self.configure(text=text, fg_color=color)


class TicketRow(ctk.CTkFrame):
    def __init__(self, master, gui, session, stripe=False, pinned=False):
        super().__init__(master, fg_color=ROW_ALT_BACKGROUND if stripe else WIDGET_BACKGROUND,
                         corner_radius=0, border_width=1, border_color=WIDGET_BACKGROUND)
        self.gui = gui
        self.session = session
        ticket = session.ticket
        self.grid_columnconfigure(1, weight=1)

        ctk.CTkLabel(self, text="●", font=FONT_MONO_NORMAL, text_color=ticket.status.category_color,
                     width=14).grid(row=0, column=0, padx=(6, 2), sticky='w')
        summ_disp = ticket.summary[:40] + ('...' if len(ticket.summary) > 40 else '')
        ctk.CTkLabel(self, text=f"[{ticket.key}] {summ_disp}", font=FONT_MONO_NORMAL, anchor='w',
                     text_color=TEXT_COLOR_NORMAL).grid(row=0, column=1, sticky='ew')
        self.spent_label = ctk.CTkLabel(self, text=f":{format_duration(ticket.time_spent_seconds)}",
                                        font=FONT_MONO_SMALL, text_color=TEXT_COLOR_DIM)
        self.spent_label.grid(row=0, column=2, padx=5)
        if pinned:
            ctk.CTkButton(self, text="x", width=24, font=FONT_MONO_SMALL, corner_radius=0,
                          fg_color="transparent", text_color=TEXT_COLOR_DIM, hover_color=HOVER_COLOR_BTN,
                          command=lambda: gui.unpin(ticket.key)).grid(row=0, column=3, padx=(0, 4))

        controls = ctk.CTkFrame(self, fg_color="transparent")
        controls.grid(row=1, column=0, columnspan=4, sticky='ew', padx=6, pady=(0, 4))
        controls.grid_columnconfigure(2, weight=1)

        self.timer_button = ctk.CTkButton(
            controls, text="START", font=FONT_MONO_BOLD, width=120, corner_radius=0,
            command=self.toggle_timer, fg_color=STATUS_GREEN, text_color=BACKGROUND_COLOR,
            hover_color=TERMINAL_GREEN_BRIGHT
        )
        self.timer_button.grid(row=0, column=0, padx=(0, 5))
        self.discard_button = ctk.CTkButton(
            controls, text="DISCARD", font=FONT_MONO_BOLD, width=80, corner_radius=0,
            command=self.discard, fg_color=TEXT_COLOR_DIM, text_color=BACKGROUND_COLOR,
            hover_color=HOVER_COLOR_BTN
        )
        self.live_label = ctk.CTkLabel(controls, text="", font=FONT_MONO_BOLD, text_color=TERMINAL_GREEN_BRIGHT)
        self.live_label.grid(row=0, column=2, sticky='w', padx=5)

        self.manual_entry = ctk.CTkEntry(
            controls, placeholder_text="1h 30m >", width=90, font=FONT_MONO_NORMAL, corner_radius=0,
            fg_color=BACKGROUND_COLOR, text_color=TEXT_COLOR_NORMAL, placeholder_text_color=TEXT_COLOR_DIM,
            border_width=1, border_color=BORDER_COLOR
        )
        self.manual_entry.grid(row=0, column=3, padx=(5, 5))
        self.manual_entry.bind("<Return>", self.log_manual)
        self.log_button = ctk.CTkButton(
            controls, text="LOG", font=FONT_MONO_BOLD, width=50, corner_radius=0, command=self.log_manual,
            fg_color=WIDGET_BACKGROUND, text_color=TEXT_COLOR_NORMAL, border_color=BORDER_COLOR,
            border_width=1, hover_color=HOVER_COLOR_BTN
        )
        self.log_button.grid(row=0, column=4)

        self.description_entry = ctk.CTkEntry(
            self, placeholder_text="what are you working on? >", font=FONT_MONO_SMALL, corner_radius=0,
            fg_color=BACKGROUND_COLOR, text_color=TEXT_COLOR_NORMAL, placeholder_text_color=TEXT_COLOR_DIM,
            border_width=1, border_color=BORDER_COLOR
        )
        self.error_label = ctk.CTkLabel(self, text="", font=FONT_MONO_SMALL, text_color=ERROR_RED,
                                        wraplength=520, justify='left', anchor='w')
        self.refresh()

    def refresh(self):
        session = self.session
        running = session.is_running
        self.configure(border_color=BORDER_COLOR if running else WIDGET_BACKGROUND)

        if running:
            self.timer_button.configure(text=session.save_label.upper(), fg_color=ERROR_RED, hover_color="#FF4444")
            self.discard_button.grid(row=0, column=1, padx=(0, 5))
            self.description_entry.grid(row=2, column=0, columnspan=4, sticky='ew', padx=6, pady=(0, 4))
            self.live_label.configure(text=session.live_duration())
        else:
            self.timer_button.configure(text="START", fg_color=STATUS_GREEN, hover_color=TERMINAL_GREEN_BRIGHT)
            self.discard_button.grid_remove()
            self.description_entry.grid_remove()
            self.live_label.configure(text="")

        state = 'disabled' if session.busy or session.blocked else 'normal'
        self.timer_button.configure(state=state)
        self.discard_button.configure(state='disabled' if session.busy else 'normal')
        self.log_button.configure(state='disabled' if session.busy else 'normal')

        if session.last_error:
            self.error_label.configure(text=f"!! {session.last_error[:300]}")
            self.error_label.grid(row=3, column=0, columnspan=4, sticky='ew', padx=6, pady=(0, 4))
        else:
            self.error_label.grid_remove()

    def tick(self):
        if self.session.is_running:
            self.live_label.configure(text=self.session.live_duration())

    def toggle_timer(self):
        if self.session.is_running:
            self.session.description = self.description_entry.get()
            self.gui.stop_timer(self)
        else:
            self.gui.start_timer(self)

    def discard(self):
        self.gui.discard_timer(self)

    def log_manual(self, event=None):
        self.gui.log_manual(self, self.manual_entry.get())


class GUI:
    def __init__(self, settings, store, config_path=None):
        self.settings = settings
        self.store = store
        self.config_path = config_path
        self.rows = []
        self.sessions = {}
        self.show_done = False

        ctk.set_appearance_mode(settings.theme)
        self.root = ctk.CTk()
        self.root.configure(fg_color=BACKGROUND_COLOR)
        self.root.geometry("640x720")
        self.root.title("JIRA::TIME")
        self.root.attributes('-alpha', 0.97)

        header = ctk.CTkFrame(self.root, fg_color="transparent")
        header.pack(fill='x', padx=10, pady=(10, 5))
        ctk.CTkLabel(header, text="[[ JIRA TIME ]]", font=FONT_MONO_XLARGE,
                     text_color=TERMINAL_GREEN).pack(side='left')
        self.badge_label = BadgeLabel(header, self.root)
        self.badge_label.pack(side='left', padx=10)
        self.today_label = ctk.CTkLabel(header, text="TODAY: --", font=FONT_MONO_NORMAL,
                                        text_color=TEXT_COLOR_NORMAL)
        self.today_label.pack(side='right')

        toolbar = ctk.CTkFrame(self.root, fg_color="transparent")
        toolbar.pack(fill='x', padx=10, pady=5)
        toolbar.grid_columnconfigure(2, weight=1)
        ctk.CTkButton(
            toolbar, text="REFRESH", font=FONT_MONO_BOLD, corner_radius=0, width=100,
            command=self.load_tickets, fg_color=WIDGET_BACKGROUND, text_color=TEXT_COLOR_NORMAL,
            border_color=BORDER_COLOR, border_width=1, hover_color=HOVER_COLOR_BTN
        ).grid(row=0, column=0, padx=(0, 5))
        self.done_button = ctk.CTkButton(
            toolbar, text="SHOW DONE", font=FONT_MONO_BOLD, corner_radius=0, width=110,
            command=self.toggle_done, fg_color=WIDGET_BACKGROUND, text_color=TEXT_COLOR_NORMAL,
            border_color=BORDER_COLOR, border_width=1, hover_color=HOVER_COLOR_BTN
        )
        self.done_button.grid(row=0, column=1, padx=(0, 5))
        self.pin_entry = ctk.CTkEntry(
            toolbar, placeholder_text="pin ticket key >", font=FONT_MONO_NORMAL, corner_radius=0,
            fg_color=WIDGET_BACKGROUND, text_color=TEXT_COLOR_NORMAL, placeholder_text_color=TEXT_COLOR_DIM,
            border_width=1, border_color=BORDER_COLOR
        )
        self.pin_entry.grid(row=0, column=2, sticky='ew', padx=(0, 5))
        self.pin_entry.bind("<Return>", self.pin)
        ctk.CTkButton(
            toolbar, text="PIN", font=FONT_MONO_BOLD, corner_radius=0, width=60, command=self.pin,
            fg_color=TERMINAL_GREEN, text_color=BACKGROUND_COLOR, hover_color=TERMINAL_GREEN_BRIGHT
        ).grid(row=0, column=3)

        self.list_frame = ctk.CTkScrollableFrame(
            self.root, fg_color=WIDGET_BACKGROUND, corner_radius=0, border_width=1, border_color=BORDER_COLOR,
            scrollbar_button_color=TERMINAL_GREEN, scrollbar_button_hover_color=TERMINAL_GREEN_BRIGHT
        )
        self.list_frame.pack(fill='both', expand=True, padx=10, pady=5)
        self.list_frame.grid_columnconfigure(0, weight=1)

        self.status_label = ctk.CTkLabel(self.root, text="", font=FONT_MONO_SMALL, text_color=TEXT_COLOR_DIM,
                                         anchor='w')
        self.status_label.pack(fill='x', padx=12, pady=(0, 8))

        self.badge = BadgeNotifier(self.store, self.badge_label).attach()
        self._unsubscribe = self.store.subscribe(lambda timer: self.root.after(0, self.refresh_rows))
        self.root.protocol("WM_DELETE_WINDOW", self.on_closing)

    def run(self):
        if not self.settings.is_configured():
            messagebox.showerror("Config Error",
                                 "Jira server and API token are not configured.\n"
                                 "Edit the config file and restart.", parent=self.root)
        else:
            self.load_tickets()
        self.root.after(TICK_INTERVAL_MS, self._tick)
        self.root.mainloop()

    def set_status(self, text):
        logger.info("%s", text)
        if self.status_label.winfo_exists():
            self.status_label.configure(text=text)

    def run_in_background(self, func, *args, on_success=None, on_error=None):
        def task():
            try:
                result = func(*args)
            except Exception as exc:
                logger.debug("Background task failed: %s", exc)
                if on_error:
                    self.root.after(0, lambda e=exc: on_error(e))
            else:
                if on_success:
                    self.root.after(0, lambda: on_success(result))

        threading.Thread(target=task, daemon=True).start()

    def show_error(self, title, exc):
        if isinstance(exc, SessionBusy):
            self.set_status(str(exc))
            return
        self.set_status(f"!! {title}")
        messagebox.showerror(title, str(exc), parent=self.root)

    def notify(self, message):
        self.root.after(0, lambda: messagebox.showinfo("Touch Grass", message, parent=self.root))

    # ----------------------------------------------------------- tickets --
    def load_tickets(self):
        self.set_status("fetching tickets...")
        self.run_in_background(jira.fetch_sections, self.settings, self.show_done,
                               on_success=self._render_tickets,
                               on_error=lambda exc: self.show_error("Ticket Fetch Error", exc))
        self.run_in_background(jira.fetch_todays_time, self.settings,
                               on_success=lambda secs: self.today_label.configure(
                                   text=f"TODAY: {format_duration(secs)}"))

    def _session_for(self, ticket):
        session = self.sessions.get(ticket.id)
        if session is None:
            session = TimerSession(self.store, self.settings, ticket, notify=self.notify)
            self.sessions[ticket.id] = session
        else:
            session.ticket = ticket
        return session

    def _render_tickets(self, sections):
        for widget in self.list_frame.winfo_children():
            widget.destroy()
        self.rows = []

        by_name = {section.name: section for section in sections}
        pinned_ids = {ticket.id for ticket in by_name["pinned"].tickets}
        total = 0
        row_index = 0
        for section in sections:
            is_pinned = section.name == "pinned"
            tickets = [t for t in section.tickets if is_pinned or t.id not in pinned_ids]
            ctk.CTkLabel(self.list_frame, text=SECTION_TITLES[section.name], font=FONT_MONO_BOLD, anchor='w',
                         text_color=TEXT_COLOR_DIM).grid(row=row_index, column=0, sticky='ew', pady=(6, 2))
            row_index += 1

            if section.error:
                ctk.CTkLabel(self.list_frame, text=f"   !! {section.error}", font=FONT_MONO_SMALL, anchor='w',
                             text_color=ERROR_RED, wraplength=560,
                             justify='left').grid(row=row_index, column=0, sticky='ew')
                row_index += 1
                if is_pinned:
                    row_index = self._render_pinned_keys(row_index)
                continue

            if not tickets:
                ctk.CTkLabel(self.list_frame, text="   no tickets", font=FONT_MONO_SMALL, anchor='w',
                             text_color=TEXT_COLOR_DIM).grid(row=row_index, column=0, sticky='ew')
                row_index += 1
            for i, ticket in enumerate(tickets):
                row = TicketRow(self.list_frame, self, self._session_for(ticket), stripe=i % 2 == 1,
                                pinned=is_pinned)
                row.grid(row=row_index, column=0, sticky='ew', pady=1)
                self.rows.append(row)
                row_index += 1
            total += len(tickets)

        failed = [section.name for section in sections if section.error]
        if failed:
            self.set_status(f"!! loaded {total} tickets, failed: {', '.join(failed)}")
        else:
            self.set_status(f"loaded {total} tickets")

    # keeps a stale pin removable when Jira rejects the pinned query
    def _render_pinned_keys(self, row_index):
        for key in self.settings.pinned_ticket_keys:
            line = ctk.CTkFrame(self.list_frame, fg_color=WIDGET_BACKGROUND, corner_radius=0)
            line.grid(row=row_index, column=0, sticky='ew', pady=1)
            line.grid_columnconfigure(0, weight=1)
            ctk.CTkLabel(line, text=f"   [{key}]", font=FONT_MONO_NORMAL, anchor='w',
                         text_color=TEXT_COLOR_DIM).grid(row=0, column=0, sticky='ew')
            ctk.CTkButton(line, text="x", width=24, font=FONT_MONO_SMALL, corner_radius=0,
                          fg_color="transparent", text_color=TEXT_COLOR_DIM, hover_color=HOVER_COLOR_BTN,
                          command=lambda k=key: self.unpin(k)).grid(row=0, column=1, padx=(0, 4))
            row_index += 1
        return row_index

    def refresh_rows(self):
        for row in self.rows:
            if row.winfo_exists():
                row.refresh()

    def toggle_done(self):
        self.show_done = not self.show_done
        self.done_button.configure(text="HIDE DONE" if self.show_done else "SHOW DONE")
        self.load_tickets()

    def pin(self, event=None):
        key = self.pin_entry.get().strip()
        if not key:
            return
        self.settings.pin(key)
        self._save_settings()
        self.pin_entry.delete(0, "end")
        self.load_tickets()

    def unpin(self, key):
        if not messagebox.askyesno("Unpin", f"Unpin {key}?", parent=self.root):
            return
        self.settings.unpin(key)
        self._save_settings()
        self.load_tickets()

    def _save_settings(self):
        try:
            self.settings.save(self.config_path)
        except OSError as e:
            self.show_error("Config Error", e)

    # ------------------------------------------------------------- timer --
    def start_timer(self, row, skip_failed_check=False):
        session = row.session
        if session.blocked:
            messagebox.showwarning("Timer Active", "Stop the running timer before starting another.",
                                   parent=self.root)
            return

        on_check_failed = (lambda exc: True) if skip_failed_check else None
        self.run_in_background(session.start, on_check_failed,
                               on_success=lambda timer: self._timer_started(row),
                               on_error=lambda exc: self._start_failed(row, exc))
        row.refresh()

    def _timer_started(self, row):
        self.set_status(f"timer started for {row.session.ticket.key}")
        row.refresh()

    def _start_failed(self, row, exc):
        row.refresh()
        ticket_key = row.session.ticket.key
        if isinstance(exc, PermissionCheckFailed):
            proceed = messagebox.askyesno(
                "Permission Check Failed",
                f"Could not verify that you may log work on {ticket_key}.\n\n{exc.reason}\n\nStart anyway?",
                parent=self.root)
            if proceed:
                self.start_timer(row, skip_failed_check=True)
            return
        if isinstance(exc, PermissionDenied):
            self.show_error("No Permission", exc)
            return
        self.show_error("Timer Error", exc)

    def stop_timer(self, row):
        session = row.session
        self.set_status(f"saving worklog for {session.ticket.key}...")
        self.run_in_background(session.stop,
                               on_success=lambda seconds: self._timer_saved(row, seconds),
                               on_error=lambda exc: self._stop_failed(row, exc))
        row.refresh()

    def _timer_saved(self, row, seconds):
        row.description_entry.delete(0, "end")
        self.set_status(f"logged {format_duration(seconds)} on {row.session.ticket.key}")
        self.load_tickets()

    def _stop_failed(self, row, exc):
        row.refresh()
        if isinstance(exc, SubmissionFailed):
            self.show_error("Failed To Save Timer", exc)
        else:
            self.show_error("Timer Error", exc)

    def discard_timer(self, row):
        session = row.session

        def _confirm(timer):
            return messagebox.askyesno(
                "Discard Timer",
                f"Discard {session.live_duration()} tracked on {session.ticket.key}?\n"
                "This time will be lost.",
                icon='warning', parent=self.root)

        try:
            discarded = session.discard(_confirm)
        except (ValidationFailed, SessionBusy) as e:
            self.show_error("Discard", e)
            return
        if discarded:
            row.description_entry.delete(0, "end")
            self.set_status(f"discarded {format_duration(discarded.lost_seconds)} on {session.ticket.key}")
        row.refresh()

    def log_manual(self, row, text):
        session = row.session
        self.set_status(f"logging {text.strip()} on {session.ticket.key}...")
        self.run_in_background(session.log_manual, text,
                               on_success=lambda seconds: self._manual_logged(row, text),
                               on_error=lambda exc: self._manual_failed(row, exc))
        row.refresh()

    def _manual_logged(self, row, text):
        row.manual_entry.delete(0, "end")
        self.set_status(f"logged {text.strip()} on {row.session.ticket.key}")
        self.load_tickets()

    def _manual_failed(self, row, exc):
        row.refresh()
        if isinstance(exc, ValidationFailed):
            self.show_error("Invalid Duration", exc)
        else:
            self.show_error("Worklog Error", exc)

    def _tick(self):
        if not self.root.winfo_exists():
            return
        if hasattr(self.store, 'poll'):
            self.store.poll()
        for row in self.rows:
            if row.winfo_exists():
                row.tick()
        self.root.after(TICK_INTERVAL_MS, self._tick)

    def on_closing(self):
        logger.info("## Closing JIRA Time ##")
        if self.store.read():
            logger.info("Timer still running; it keeps counting until stopped from any window.")
        self.badge.detach()
        self._unsubscribe()
        self.root.destroy()
