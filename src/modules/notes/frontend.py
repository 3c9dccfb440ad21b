"""Notes 模块页面入口"""


def Main() -> str:  # noqa: N802 - 页面入口约定的导出名
    return """
<section class="notes-surface">
  <h1>Notes</h1>
  <form id="notes-form">
    <input name="title" placeholder="Title" required>
    <textarea name="body" placeholder="Body"></textarea>
    <button type="submit">Add</button>
  </form>
  <ul id="notes-list"></ul>
</section>
<script>
(function () {
  const list = document.getElementById("notes-list");
  const form = document.getElementById("notes-form");
  async function refresh() {
    const res = await fetch("/api/notes");
    if (!res.ok) { list.textContent = "Notes unavailable (" + res.status + ")"; return; }
    const data = await res.json();
    list.innerHTML = "";
    for (const note of data.items) {
      const li = document.createElement("li");
      li.textContent = (note.pinned ? "* " : "") + note.title;
      list.appendChild(li);
    }
  }
  form.addEventListener("submit", async (ev) => {
    ev.preventDefault();
    const fd = new FormData(form);
    await fetch("/api/notes", {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({title: fd.get("title"), body: fd.get("body")}),
    });
    form.reset();
    refresh();
  });
  refresh();
})();
</script>
""".strip()
