"""
Login / register form for the chatroom window.
Lets the user enter a name and password, then either log in or create an account.
"""
import tkinter as tk
from tkinter import messagebox
from typing import Callable, Optional

from common.messages import Credential


def validate_username(username: str) -> Optional[str]:
    """
    Check a username before it is sent to the server.

    Returns:
        An error message, or None if the name is acceptable
    """
    if not username:
        return "Please enter a username!"
    if len(username) < 2:
        return "Username must be at least 2 characters!"
    if len(username) > 20:
        return "Username must not exceed 20 characters!"
    # Check special characters
    if not username.replace("_", "").replace("-", "").replace(" ", "").isalnum():
        return "Username can only contain letters, numbers, underscores and hyphens!"
    return None


class AuthForm(tk.Frame):
    """
    Login form, switchable to register mode.

    Attributes:
        mode: "login" or "register"
        on_submit: called with (Credential, mode) when the form is submitted
    """

    def __init__(self, master, on_submit: Callable[[Credential, str], None]):
        super().__init__(master, bg="#f3f3f3")
        self.on_submit = on_submit
        self.mode = "login"
        self._create_widgets()

    def _create_widgets(self):
        """
        Create all widgets: title, username and password entries,
        inline status label, submit button and mode switch.
        """
        self.title_label = tk.Label(
            self,
            text="Welcome to ChatRoom",
            font=("Segoe UI", 28, "bold"),
            bg="#f3f3f3",
            fg="#1f1f1f"
        )
        self.title_label.pack(pady=(30, 10))

        fields = tk.Frame(self, bg="#f3f3f3")
        fields.pack(pady=20, padx=40, fill="x")

        tk.Label(fields, text="Username", bg="#f3f3f3", anchor="w").pack(fill="x", padx=20)
        self.username_entry = tk.Entry(fields, font=("Segoe UI", 12), relief="flat", bg="#ffffff")
        self.username_entry.pack(fill="x", ipady=6, padx=20)
        # Blue underline below entry
        tk.Frame(fields, height=2, bg="#1976D2").pack(fill="x", padx=20, pady=(0, 12))

        tk.Label(fields, text="Password", bg="#f3f3f3", anchor="w").pack(fill="x", padx=20)
        self.password_entry = tk.Entry(fields, font=("Segoe UI", 12), relief="flat", bg="#ffffff", show="•")
        self.password_entry.pack(fill="x", ipady=6, padx=20)
        tk.Frame(fields, height=2, bg="#1976D2").pack(fill="x", padx=20)

        # Inline error / notice label (initially empty)
        self.status_label = tk.Label(fields, text="", font=("Segoe UI", 10), bg="#f3f3f3", anchor="w")
        self.status_label.pack(fill="x", padx=20, pady=(6, 0))

        # Bind Enter key for submit
        self.username_entry.bind("<Return>", lambda e: self._submit())
        self.password_entry.bind("<Return>", lambda e: self._submit())

        self.submit_btn = tk.Button(
            self,
            text="Login",
            font=("Segoe UI", 12, "bold"),
            bg="#2196F3",
            fg="white",
            cursor="hand2",
            command=self._submit,
            relief="flat",
            padx=40,
            pady=10,
            activebackground="#1976D2"
        )
        self.submit_btn.pack(pady=(30, 10))

        self.switch_btn = tk.Button(
            self,
            text="No account? Register",
            font=("Segoe UI", 10),
            bg="#f3f3f3",
            fg="#1976D2",
            cursor="hand2",
            relief="flat",
            command=self._toggle_mode
        )
        self.switch_btn.pack()

    def set_mode(self, mode: str, notice: Optional[str] = None):
        """Switch between login and register, optionally showing a notice."""
        self.mode = mode
        if mode == "register":
            self.title_label.config(text="Create an account")
            self.submit_btn.config(text="Register")
            self.switch_btn.config(text="Have an account? Log in")
        else:
            self.title_label.config(text="Welcome to ChatRoom")
            self.submit_btn.config(text="Login")
            self.switch_btn.config(text="No account? Register")
        self.password_entry.delete(0, "end")
        self.show_status(notice or "")
        self.username_entry.focus()

    def show_status(self, msg: str, error: bool = False):
        """Display a notice (or a red error) under the inputs."""
        self.status_label.config(text=msg, fg="#d32f2f" if error else "#2e7d32")

    def _toggle_mode(self):
        self.set_mode("login" if self.mode == "register" else "register")

    def _submit(self):
        """
        Handle when user clicks the submit button or presses Enter.
        Validate input and hand the credential over.
        """
        username = self.username_entry.get().strip()
        password = self.password_entry.get()

        problem = validate_username(username)
        if problem is None and not password:
            problem = "Please enter a password!"
        if problem:
            messagebox.showerror("Error", problem)
            self.username_entry.focus()
            return

        self.show_status("Connecting...")
        # The password only lives in the Credential until the auth command is sent
        self.password_entry.delete(0, "end")
        self.on_submit(Credential(username, password), self.mode)
