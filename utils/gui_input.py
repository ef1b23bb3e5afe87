from tkinter import StringVar, messagebox

import customtkinter as ctk


class TextInputDialog:
    """Multi-line paste dialog used for private keys and recipient lists."""

    def __init__(self, title: str, heading: str, instructions: str, submit_text: str = "Import",
                 icon: str = "✎", width: int = 640, height: int = 520):
        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")
        self.root = ctk.CTk()
        self.root.title(title)
        self.root.geometry(f"{width}x{height}")
        self.root.resizable(True, True)
        self.root.protocol("WM_DELETE_WINDOW", self.on_cancel)
        self.result = None
        self.destroyed = False
        self.setup_ui(heading, instructions, submit_text, icon)
        self.root.after(100, self.center_and_focus)

    def setup_ui(self, heading, instructions, submit_text, icon):
        main_frame = ctk.CTkFrame(self.root, corner_radius=15)
        main_frame.pack(fill="both", expand=True, padx=20, pady=20)

        header_frame = ctk.CTkFrame(main_frame, fg_color="transparent")
        header_frame.pack(fill="x", padx=20, pady=(20, 10))
        ctk.CTkLabel(header_frame, text=icon, font=("Arial", 24), text_color="#4CC9F0").pack(side="left", padx=(0, 10))
        ctk.CTkLabel(header_frame, text=heading, font=("Arial", 20, "bold"), text_color="white").pack(side="left")

        ctk.CTkLabel(main_frame, text=instructions, font=("Arial", 14), text_color="#B0B0B0",
                     justify="left").pack(pady=(0, 20))

        input_frame = ctk.CTkFrame(main_frame, corner_radius=10)
        input_frame.pack(fill="both", expand=True, padx=20, pady=10)
        self.text_widget = ctk.CTkTextbox(input_frame, height=200, border_width=0, corner_radius=8,
                                          fg_color="#2B2B2B", text_color="white",
                                          font=("Consolas", 12), wrap="none")
        self.text_widget.pack(fill="both", expand=True, padx=10, pady=10)
        self.text_widget.focus_set()

        self.counter_var = StringVar(value="0 lines")
        ctk.CTkLabel(main_frame, textvariable=self.counter_var, font=("Arial", 11),
                     text_color="#808080").pack(pady=(5, 0))
        self.setup_counter_updater()

        button_frame = ctk.CTkFrame(main_frame, fg_color="transparent")
        button_frame.pack(fill="x", padx=20, pady=20)
        ctk.CTkButton(button_frame, text="Cancel", command=self.on_cancel, fg_color="transparent",
                      border_width=2, text_color=("black", "white"), hover_color="#3A3A3A",
                      font=("Arial", 14, "bold")).pack(side="left", padx=(0, 10))
        ctk.CTkButton(button_frame, text=submit_text, command=self.on_submit, fg_color="#4CC9F0",
                      hover_color="#3AA8CC", font=("Arial", 14, "bold"),
                      text_color="white").pack(side="right")

        # Return inserts a newline in the textbox; Ctrl+Return submits
        self.root.bind("<Control-Return>", lambda e: self.on_submit())
        self.root.bind("<Escape>", lambda e: self.on_cancel())
        self.update_counter()

    def center_and_focus(self):
        if self.destroyed:
            return
        self.root.update_idletasks()
        w = self.root.winfo_width()
        h = self.root.winfo_height()
        sw = self.root.winfo_screenwidth()
        sh = self.root.winfo_screenheight()
        self.root.geometry(f"+{max(0, (sw - w) // 2)}+{max(0, (sh - h) // 2)}")
        self.root.deiconify()
        self.root.lift()
        self.root.attributes("-topmost", True)
        self.root.after(300, lambda: self.root.attributes("-topmost", False))
        self.root.focus_force()
        self.text_widget.focus_set()

    def setup_counter_updater(self):
        def poll_counter():
            if not self.destroyed:
                self.update_counter()
                self.root.after(500, poll_counter)
        self.root.after(500, poll_counter)

    def update_counter(self, event=None):
        if self.destroyed:
            return
        text = self.text_widget.get("1.0", "end-1c")
        lines = [ln for ln in text.splitlines() if ln.strip()]
        self.counter_var.set(f"{len(lines)} lines, {len(text)} characters")

    def on_submit(self):
        self.result = self.text_widget.get("1.0", "end-1c")
        self.cleanup()

    def on_cancel(self):
        self.result = ""
        self.cleanup()

    def cleanup(self):
        self.destroyed = True
        self.root.quit()
        self.root.destroy()

    def get_input(self) -> str:
        self.root.mainloop()
        return self.result or ""


def ask_text(title: str, heading: str, instructions: str, submit_text: str = "Import", icon: str = "✎") -> str:
    return TextInputDialog(title, heading, instructions, submit_text, icon).get_input()


def show_info(title: str, message: str) -> None:
    root = ctk.CTk()
    root.withdraw()
    messagebox.showinfo(title, message)
    root.destroy()
