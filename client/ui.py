import tkinter as tk
from tkinter import ttk, messagebox
from typing import Dict, List, Optional

import emoji
from PIL import Image, ImageDraw, ImageTk

from client.config import ClientConfig
from client.dispatch import MessageDispatcher
from client.login import AuthForm
from client.net import ConnectionManager
from client.render import Presenter, RosterEntry
from common.messages import Credential, HistoryRequest

# one colour per message classification (tag names match Classification values)
TAG_COLOURS = {
    "private_sent": "#d06b00",
    "private_received": "#b8336a",
    "group_sent": "#2e7d32",
    "group_received": "#2a64cb",
}
STATUS_COLOURS = {True: "#43a047", False: "#9e9e9e"}


class ChatUI(tk.Tk):
    def __init__(self, net: ConnectionManager, config: ClientConfig):
        super().__init__()
        self.title("ChatRoom")
        self.geometry("900x600")
        self.net = net
        self.settings = config
        self.identity: Optional[str] = None

        # Keep PhotoImages referenced so tk does not drop them
        self.status_images: Dict[bool, ImageTk.PhotoImage] = {}

        self.auth_form = AuthForm(self, on_submit=self._submit_credential)
        self.chat_frame = ttk.Frame(self)
        self._build_chat_frame()

        self.presenter = Presenter(self)
        # NOW attach the dispatcher - all widgets exist, so handlers can safely update the UI
        self.dispatcher = MessageDispatcher(net, self.presenter)

        self.show_login_view()
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.after(self.settings.poll_interval_ms, self._pump)

    def _build_chat_frame(self):
        frame = self.chat_frame
        frame.columnconfigure(0, weight=1)
        frame.columnconfigure(1, weight=0, minsize=170)
        frame.rowconfigure(1, weight=1)

        self.header = tk.Label(frame, text="ChatRoom", bg="#a1ecf7", font=("Segoe UI", 16, "bold"))
        self.header.grid(row=0, column=0, columnspan=2, sticky="ew", pady=(4, 6))

        # message area
        log_frame = ttk.Frame(frame)
        log_frame.grid(row=1, column=0, sticky="nsew", padx=(8, 4))
        log_frame.rowconfigure(0, weight=1)
        log_frame.columnconfigure(0, weight=1)
        self.text = tk.Text(log_frame, state="disabled", wrap="word")
        self.text.grid(row=0, column=0, sticky="nsew")
        sb = ttk.Scrollbar(log_frame, orient="vertical", command=self.text.yview)
        sb.grid(row=0, column=1, sticky="ns")
        self.text.configure(yscrollcommand=sb.set)
        for tag, colour in TAG_COLOURS.items():
            self.text.tag_config(tag, foreground=colour)

        # roster / recipient picker
        right = ttk.Frame(frame)
        right.grid(row=1, column=1, sticky="nsew", padx=(4, 8))
        ttk.Label(right, text="USERS", background="#a1ecf7", anchor="center",
                  font=("Segoe UI", 10, "bold")).pack(fill="x")
        self.user_frame = tk.Frame(right, bg="white")
        self.user_frame.pack(fill="both", expand=True, pady=4)
        ttk.Button(right, text="Load history", command=self._request_history).pack(fill="x", pady=(0, 4))

        # compose area
        compose = ttk.Frame(frame)
        compose.grid(row=2, column=0, columnspan=2, sticky="ew", padx=8, pady=8)
        compose.columnconfigure(1, weight=1)

        self.recipient_label = ttk.Label(compose, text="To: Everyone", width=18)
        self.recipient_label.grid(row=0, column=0, padx=(0, 6))
        self.entry = ttk.Entry(compose)
        self.entry.grid(row=0, column=1, sticky="ew", ipady=6)
        self.entry.bind("<Return>", lambda e: self.send_text())
        ttk.Button(compose, text="☺", width=3, command=self.open_emoji_picker).grid(row=0, column=2, padx=4)
        ttk.Button(compose, text="Send ➤", command=self.send_text, width=12).grid(row=0, column=3, padx=4, ipady=8)

        # Prefer a font with colored emoji on Windows
        try:
            emoji_font = ("Segoe UI Emoji", 11)
            self.entry.configure(font=emoji_font)
            self.text.configure(font=emoji_font)
        except tk.TclError:
            pass

    # ========== ChatView ==========
    def show_login_view(self, notice: Optional[str] = None):
        self.identity = None
        self.chat_frame.pack_forget()
        self.auth_form.pack(fill="both", expand=True)
        self.auth_form.set_mode("login", notice)

    def show_register_view(self):
        self.chat_frame.pack_forget()
        self.auth_form.pack(fill="both", expand=True)
        self.auth_form.set_mode("register")

    def show_chat_view(self, identity: str):
        self.identity = identity
        self.header.config(text=f"ChatRoom  |  User: {identity}")
        self.auth_form.pack_forget()
        self.chat_frame.pack(fill="both", expand=True)
        self.entry.focus_set()

    def alert(self, title: str, message: str):
        messagebox.showerror(title, message, parent=self)

    def append_message(self, text: str, tag: str):
        self.text.configure(state="normal")
        self.text.insert("end", text + "\n", (tag,))
        self.text.configure(state="disabled")
        self.text.see("end")

    def clear_messages(self):
        self.text.configure(state="normal")
        self.text.delete("1.0", "end")
        self.text.configure(state="disabled")

    def render_roster(self, entries: List[RosterEntry]):
        # Delete all widgets in user_frame and rebuild from scratch
        for widget in self.user_frame.winfo_children():
            widget.destroy()

        self._roster_row("Everyone", None, selected=self.presenter.recipient is None)
        for entry in entries:
            self._roster_row(entry.name, entry, selected=entry.selected)

    def set_recipient(self, name: Optional[str]):
        self.recipient_label.config(text=f"To: {name}" if name else "To: Everyone")

    # ========== roster helpers ==========
    def _roster_row(self, label: str, entry: Optional[RosterEntry], selected: bool):
        bg = "#e3f2fd" if selected else "white"
        row = tk.Frame(self.user_frame, bg=bg, cursor="hand2")
        row.pack(fill="x", pady=2)
        widgets = [row]
        if entry is not None:
            dot = self._status_dot(entry.online)
            dot_label = tk.Label(row, image=dot, bg=bg)
            dot_label.pack(side="left", padx=(6, 6))
            widgets.append(dot_label)
        name_label = tk.Label(row, text=label, bg=bg, font=("Segoe UI", 12), anchor="w")
        name_label.pack(side="left")
        widgets.append(name_label)

        name = entry.name if entry is not None else None
        # Bind click to select the recipient for the compose box
        for w in widgets:
            w.bind("<Button-1>", lambda e, n=name: self.presenter.select_recipient(n, self.net.session))

    def _status_dot(self, online: bool, size: int = 12) -> ImageTk.PhotoImage:
        """
        Draw a filled circle for the presence indicator (green online, grey offline).
        """
        if online in self.status_images:
            return self.status_images[online]
        img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)
        draw.ellipse((0, 0, size - 1, size - 1), fill=STATUS_COLOURS[online])
        photo = ImageTk.PhotoImage(img)
        self.status_images[online] = photo
        return photo

    # ========== user intents ==========
    def _submit_credential(self, credential: Credential, mode: str):
        self.presenter.reset()
        self.net.connect(credential, mode)

    def send_text(self):
        message = self.presenter.compose(self.entry.get(), self.identity)
        if message is None:
            return
        self.entry.delete(0, "end")
        # No local echo: the server sends our own message back to us
        if not self.net.send(message):
            self.alert("Error", "Not connected to server.")

    def _request_history(self):
        self.net.send(HistoryRequest(page=0, size=self.settings.history_page_size))

    # ========== Emoji picker UI ==========
    def open_emoji_picker(self):
        """
        Open a small emoji picker; clicking an emoji inserts it into the entry.
        """
        # Prevent opening multiple emoji picker windows at once
        if getattr(self, "_emoji_win", None) and self._emoji_win.winfo_exists():
            self._emoji_win.lift()
            return

        win = tk.Toplevel(self)
        self._emoji_win = win
        win.title("Pick an emoji")
        win.transient(self)
        win.resizable(False, False)
        win.bind("<Escape>", lambda e: win.destroy())

        cols = 7
        for i, (sym, _code) in enumerate(self._emoji_items()):
            def on_click(s=sym, w=win):
                self.entry.insert("insert", s)
                w.destroy()
            ttk.Button(win, text=sym, width=3, command=on_click).grid(row=i // cols, column=i % cols, padx=4, pady=4)

    def _emoji_items(self):
        """
        Return list of popular emojis with symbol and code
        Example: [("😀", ":grinning:"), ("😄", ":smile:"), ...]
        """
        codes = [
            ":grinning:", ":smiley:", ":smile:", ":grin:", ":sweat_smile:", ":joy:", ":wink:",
            ":blush:", ":heart_eyes:", ":thinking:", ":sunglasses:", ":cry:", ":sob:", ":angry:",
            ":clap:", ":wave:", ":thumbs_up:", ":ok_hand:", ":pray:", ":heart:", ":fire:",
            ":star:", ":tada:", ":rocket:", ":sparkles:", ":zap:", ":muscle:", ":sleeping:",
        ]
        return [(emoji.emojize(c, language="alias"), c) for c in codes]

    # ========== event pump ==========
    def _pump(self):
        try:
            self.net.poll()
        finally:
            # keep draining even if one handler raised
            self.after(self.settings.poll_interval_ms, self._pump)

    def _on_close(self):
        self.net.close()
        self.destroy()
