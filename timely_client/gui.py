"""TK GUI for Timely."""

import logging
import threading
import time
import tkinter as tk
from tkinter import ttk, scrolledtext, messagebox
from typing import Callable, List, Optional

from timely.errors import AuthenticationFailed, TimelyError
from timely.hierarchy import TodoHierarchy, apply_toggle, build_hierarchy, find_node, insert_task
from timely.utils import format_date, parse_date

from .client import TimelyClient
from .config import Config

logger = logging.getLogger(__name__)

# name -> (background, foreground, accent)
PALETTES = {
    'light': ('#ffffff', '#000000', '#5e7ce2'),
    'dark': ('#202225', '#ffffff', '#5e7ce2'),
    'dracula': ('#282a36', '#f8f8f2', '#bd93f9'),
    'solarized_light': ('#fdf6e3', '#657b83', '#268bd2'),
    'solarized_dark': ('#002b36', '#839496', '#268bd2'),
    'catppuccin_latte': ('#eff1f5', '#4c4f69', '#1e66f5'),
    'catppuccin_mocha': ('#1e1e2e', '#cdd6f4', '#89b4fa'),
}


class TimelyGui:
    """Main TK window: a tree of todos plus an activity log.

    Network calls run on worker threads; their results are applied on the
    Tk thread through ``root.after``. Creating and toggling patch the
    in-memory forest, deleting and refreshing rebuild it from the server's
    list.
    """

    def __init__(self, root: tk.Tk, config: Config):
        self.root = root
        self.config = config
        self.client = TimelyClient.from_config(config)
        self.todos: List[TodoHierarchy] = []
        self.state = 'loading'
        self.log_messages: List[str] = []

        self.root.geometry("800x450")
        self.root.minsize(150, 150)
        self._setup_ui()
        self._apply_palette()
        self._set_state('loading')
        self._load()

    def _setup_ui(self):
        main_frame = ttk.Frame(self.root)
        main_frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=10)

        controls = ttk.Frame(main_frame)
        controls.pack(fill=tk.X, pady=(0, 10))
        ttk.Label(controls, text="Timely", font=('TkDefaultFont', 18)).pack(side=tk.LEFT, padx=(0, 18))
        ttk.Button(controls, text="Add new", command=lambda: self._show_add_dialog(None)).pack(side=tk.LEFT, padx=(0, 5))
        ttk.Button(controls, text="Add child", command=self._add_child).pack(side=tk.LEFT, padx=(0, 5))
        ttk.Button(controls, text="Toggle done", command=self._toggle_selected).pack(side=tk.LEFT, padx=(0, 5))
        ttk.Button(controls, text="Delete", command=self._delete_selected).pack(side=tk.LEFT, padx=(0, 5))
        ttk.Button(controls, text="Refresh", command=self._load).pack(side=tk.LEFT, padx=(0, 5))
        ttk.Button(controls, text="Settings", command=self._show_settings).pack(side=tk.LEFT, padx=(0, 5))

        paned = ttk.PanedWindow(main_frame, orient=tk.HORIZONTAL)
        paned.pack(fill=tk.BOTH, expand=True)

        left = ttk.Frame(paned)
        paned.add(left, weight=3)
        self.tree = ttk.Treeview(left, columns=('done', 'date', 'description'))
        self.tree.heading('#0', text='Task')
        self.tree.heading('done', text='Done')
        self.tree.heading('date', text='Date')
        self.tree.heading('description', text='Description')
        self.tree.column('done', width=50, anchor=tk.CENTER)
        self.tree.column('date', width=90)
        self.tree.pack(fill=tk.BOTH, expand=True)
        self.tree.bind('<Double-Button-1>', lambda e: self._toggle_selected())
        self.tree.bind('<Delete>', lambda e: self._delete_selected())

        right = ttk.Frame(paned)
        paned.add(right, weight=1)
        ttk.Label(right, text="Activity Log").pack(anchor=tk.W)
        self.log_text = scrolledtext.ScrolledText(right, height=20, width=30)
        self.log_text.pack(fill=tk.BOTH, expand=True)

        self.status_var = tk.StringVar()
        ttk.Label(main_frame, textvariable=self.status_var, relief=tk.SUNKEN).pack(fill=tk.X, pady=(10, 0))

    def _apply_palette(self):
        bg, fg, accent = PALETTES.get(self.config.palette, PALETTES['light'])
        style = ttk.Style(self.root)
        style.configure('Treeview', background=bg, fieldbackground=bg, foreground=fg)
        style.map('Treeview', background=[('selected', accent)])
        self.log_text.configure(background=bg, foreground=fg, insertbackground=fg)

    def _set_state(self, state: str, detail: str = ''):
        self.state = state
        prefix = {'loading': 'Loading - ', 'error': 'Error - ', 'adding': 'Adding new task - ',
                  'settings': 'Settings - '}.get(state, '')
        self.root.title(f"{prefix}Timely")
        if state == 'error':
            self.status_var.set(f"Error: {detail}")
        elif state == 'loading':
            self.status_var.set("Loading...")
        else:
            self.status_var.set(f"{sum(1 for r in self.todos for _ in r.walk())} todos" if self.todos else "No todos!")

    # --- background calls ---

    def _run(self, label: str, call: Callable, on_success: Callable):
        """Run ``call`` on a worker thread and hand the result to the Tk thread."""
        def worker():
            try:
                result = call()
            except AuthenticationFailed as e:
                self.root.after(0, self._failed, label, f"authentication failed ({e}); check the password in Settings")
            except TimelyError as e:
                self.root.after(0, self._failed, label, str(e))
            else:
                self.root.after(0, on_success, result)

        self._log(f"{label}...")
        threading.Thread(target=worker, daemon=True).start()

    def _failed(self, label: str, message: str):
        logger.warning('%s failed: %s', label, message)
        self._log(f"{label} failed: {message}")
        self._set_state('error', message)

    def _load(self):
        self._run("Loading todos", self.client.load, self._loaded)

    def _loaded(self, tasks):
        self.todos = build_hierarchy(tasks)
        self._log(f"Loaded {len(tasks)} todos")
        self._render()
        self._set_state('loaded')

    def _created(self, task):
        insert_task(self.todos, task)
        self._log(f"Created '{task.name}' (id {task.id})")
        self._render()
        self._set_state('loaded')

    def _toggled(self, result):
        task_id, done = result
        if apply_toggle(self.todos, task_id, done):
            self._log(f"Todo {task_id} is now {'done' if done else 'not done'}")
        self._render()
        self._set_state('loaded')

    # --- actions ---

    def _selected_id(self) -> Optional[int]:
        selection = self.tree.selection()
        if not selection:
            return None
        return int(selection[0])

    def _add_child(self):
        parent_id = self._selected_id()
        if parent_id is None:
            messagebox.showinfo("Add child", "Select the parent task first")
            return
        self._show_add_dialog(parent_id)

    def _toggle_selected(self):
        task_id = self._selected_id()
        if task_id is None or find_node(self.todos, task_id) is None:
            return
        self._run(f"Toggling todo {task_id}", lambda: self.client.toggle(task_id), self._toggled)

    def _delete_selected(self):
        task_id = self._selected_id()
        if task_id is None:
            return
        node = find_node(self.todos, task_id)
        if node is None:
            return
        count = sum(1 for _ in node.walk())
        if count > 1 and not messagebox.askyesno("Confirm", f"Delete '{node.task.name}' and {count - 1} subtask(s)?"):
            return
        self._run(f"Deleting todo {task_id}", lambda: self.client.delete(task_id), self._loaded)

    # --- rendering ---

    def _render(self):
        expanded = {item for item in self._all_items() if self.tree.item(item, 'open')}
        selection = self.tree.selection()
        self.tree.delete(*self.tree.get_children())
        for node in self.todos:
            self._insert_node('', node, expanded)
        existing = [item for item in selection if self.tree.exists(item)]
        if existing:
            self.tree.selection_set(existing)

    def _all_items(self, parent: str = ''):
        for item in self.tree.get_children(parent):
            yield item
            yield from self._all_items(item)

    def _insert_node(self, parent: str, node: TodoHierarchy, expanded: set):
        task = node.task
        iid = str(task.id)
        self.tree.insert(parent, 'end', iid=iid, text=task.name,
                         values=('✓' if task.done else '', format_date(task.date), task.description or ''),
                         open=(iid in expanded or not expanded))
        for child in node.children:
            self._insert_node(iid, child, expanded)

    def _log(self, message: str):
        timestamp = time.strftime("%H:%M:%S")
        self.log_messages.append(f"[{timestamp}] {message}\n")
        # keep only last 100 messages
        self.log_messages = self.log_messages[-100:]
        self.log_text.delete(1.0, tk.END)
        self.log_text.insert(tk.END, ''.join(self.log_messages))
        self.log_text.see(tk.END)

    # --- dialogs ---

    def _show_add_dialog(self, parent_id: Optional[int]):
        self._set_state('adding')
        dialog = tk.Toplevel(self.root)
        parent = find_node(self.todos, parent_id) if parent_id is not None else None
        dialog.title(f"New subtask of '{parent.task.name}'" if parent else "New task")
        dialog.geometry("400x170")

        fields = {}
        for row, (label, key) in enumerate((("Name:", 'name'), ("Description:", 'description'),
                                            ("Date (YYYY-MM-DD):", 'date'))):
            ttk.Label(dialog, text=label).grid(row=row, column=0, sticky=tk.W, padx=5, pady=5)
            fields[key] = tk.StringVar()
            ttk.Entry(dialog, textvariable=fields[key]).grid(row=row, column=1, sticky=tk.EW, padx=5, pady=5)

        def close():
            dialog.destroy()
            if self.state == 'adding':
                self._set_state('loaded')

        def submit():
            name = fields['name'].get().strip()
            if not name:
                messagebox.showerror("Invalid task", "Name is required", parent=dialog)
                return
            try:
                date = parse_date(fields['date'].get())
            except ValueError as e:
                messagebox.showerror("Invalid date", str(e), parent=dialog)
                return
            description = fields['description'].get().strip() or None
            dialog.destroy()
            self._run(f"Creating '{name}'",
                      lambda: self.client.create(name, description, parent_id, date),
                      self._created)

        ttk.Button(dialog, text="Submit", command=submit).grid(row=3, column=0, columnspan=2, pady=10)
        dialog.grid_columnconfigure(1, weight=1)
        dialog.protocol("WM_DELETE_WINDOW", close)

    def _show_settings(self):
        previous = self.state
        self._set_state('settings')
        settings = tk.Toplevel(self.root)
        settings.title("Settings")
        settings.geometry("400x170")

        ttk.Label(settings, text="Server URL:").grid(row=0, column=0, sticky=tk.W, padx=5, pady=5)
        url_var = tk.StringVar(value=self.config.server_url)
        ttk.Entry(settings, textvariable=url_var).grid(row=0, column=1, sticky=tk.EW, padx=5, pady=5)

        ttk.Label(settings, text="Password:").grid(row=1, column=0, sticky=tk.W, padx=5, pady=5)
        pass_var = tk.StringVar(value=self.config.password)
        ttk.Entry(settings, textvariable=pass_var, show="*").grid(row=1, column=1, sticky=tk.EW, padx=5, pady=5)

        ttk.Label(settings, text="Palette:").grid(row=2, column=0, sticky=tk.W, padx=5, pady=5)
        palette_var = tk.StringVar(value=self.config.palette)
        ttk.Combobox(settings, textvariable=palette_var, values=sorted(PALETTES), state='readonly').grid(
            row=2, column=1, sticky=tk.EW, padx=5, pady=5)

        def save_settings():
            self.config.server_url = url_var.get()
            self.config.password = pass_var.get()
            self.config.palette = palette_var.get()
            self.client = TimelyClient.from_config(self.config)
            self._apply_palette()
            self._log("Settings saved")
            settings.destroy()
            self._set_state('loading')
            self._load()

        def cancel():
            settings.destroy()
            self._set_state(previous)

        ttk.Button(settings, text="Save", command=save_settings).grid(row=3, column=0, columnspan=2, pady=10)
        settings.grid_columnconfigure(1, weight=1)
        settings.protocol("WM_DELETE_WINDOW", cancel)


def main():
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s:%(name)s: %(message)s')
    config = Config()
    logger.info('using server url: %s', config.server_url)
    root = tk.Tk()
    TimelyGui(root, config)
    root.mainloop()


if __name__ == "__main__":
    main()
