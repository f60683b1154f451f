"""Server-rendered HTML for the login screen and the merge workspace."""

from __future__ import annotations

import html
from string import Template

from pdf_tools_api.settings import MAX_DOCUMENTS

_STYLES = """
body { font-family: system-ui, sans-serif; margin: 0; background: #f4f5f7; color: #1d2330; }
main { max-width: 760px; margin: 48px auto; padding: 0 16px; }
.card { background: #fff; border-radius: 12px; padding: 24px; box-shadow: 0 1px 4px rgba(0,0,0,.08); margin-bottom: 16px; }
.topbar { display: flex; justify-content: space-between; align-items: center; margin-bottom: 16px; }
.alert { background: #fdecea; color: #8a1c12; padding: 8px 12px; border-radius: 8px; margin-bottom: 12px; }
.input { display: block; width: 100%; padding: 8px; margin: 4px 0 12px; box-sizing: border-box; }
.btn { padding: 8px 16px; border-radius: 8px; border: 1px solid #c7ccd6; background: #fff; cursor: pointer; }
.btn.primary { background: #2b59c3; border-color: #2b59c3; color: #fff; }
.file-list { list-style: none; padding: 0; }
.file-list li { display: flex; justify-content: space-between; padding: 6px 0; border-bottom: 1px solid #eceef2; }
.muted { color: #6b7280; font-size: 14px; }
"""

_LOGIN_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>PDF Tools - Sign in</title>
    <style>$styles</style>
  </head>
  <body>
    <main>
      <section class="card">
        <h1>Sign in</h1>
        $error_html
        <form method="post" action="/login" autocomplete="off">
          <label for="username">Username</label>
          <input id="username" class="input" name="username" autocomplete="username" required />
          <label for="password">Password</label>
          <input id="password" class="input" type="password" name="password" autocomplete="current-password" required />
          <button class="btn primary" type="submit">Sign in</button>
        </form>
      </section>
    </main>
  </body>
</html>"""
)

_APP_SCRIPT = """
const input = document.getElementById("fileInput");
const list = document.getElementById("fileList");
const quality = document.getElementById("quality");
const qualityValue = document.getElementById("qualityValue");
const linearize = document.getElementById("linearize");
const mergeBtn = document.getElementById("mergeBtn");
const status = document.getElementById("status");
// docs: id -> {id, file, pages}; nodes: output order, page null means the whole document.
const docs = new Map();
let nodes = [];
let nextId = 0;

quality.addEventListener("input", () => { qualityValue.textContent = quality.value; });

async function countPages(doc) {
  const fd = new FormData();
  fd.append("file", doc.file, doc.file.name);
  const res = await fetch("/api/npages", { method: "POST", body: fd });
  if (!res.ok) {
    const body = await res.json().catch(() => null);
    status.textContent = body && body.error ? body.error.message : "Could not read " + doc.file.name;
    removeDoc(doc.id);
    return;
  }
  doc.pages = (await res.json()).pages;
  render();
}

function pageCountsKnown() {
  return nodes.every((node) => docs.get(node.doc).pages !== null);
}

function removeDoc(docId) {
  docs.delete(docId);
  nodes = nodes.filter((node) => node.doc !== docId);
  render();
}

function removeNode(index) {
  const docId = nodes[index].doc;
  nodes.splice(index, 1);
  if (!nodes.some((node) => node.doc === docId)) docs.delete(docId);
  render();
}

function moveNode(index, offset) {
  const target = index + offset;
  if (target < 0 || target >= nodes.length) return;
  const node = nodes.splice(index, 1)[0];
  nodes.splice(target, 0, node);
  render();
}

function expandNode(index) {
  const node = nodes[index];
  const doc = docs.get(node.doc);
  const pages = [];
  for (let page = 1; page <= doc.pages; page += 1) pages.push({ doc: node.doc, page: page });
  nodes.splice(index, 1, ...pages);
  render();
}

function buildLayout() {
  const layout = [];
  for (const node of nodes) {
    if (node.page === null) {
      for (let page = 1; page <= docs.get(node.doc).pages; page += 1) {
        layout.push({ doc: node.doc, page: page });
      }
    } else {
      layout.push({ doc: node.doc, page: node.page });
    }
  }
  return layout;
}

function button(label, onClick, disabled) {
  const btn = document.createElement("button");
  btn.className = "btn";
  btn.type = "button";
  btn.textContent = label;
  btn.disabled = Boolean(disabled);
  btn.onclick = onClick;
  return btn;
}

function render() {
  list.innerHTML = "";
  nodes.forEach((node, index) => {
    const doc = docs.get(node.doc);
    const li = document.createElement("li");
    const name = document.createElement("span");
    if (node.page === null) {
      const pages = doc.pages === null ? "counting pages" : doc.pages + " pages";
      name.textContent = doc.file.name + " (" + pages + ")";
    } else {
      name.textContent = doc.file.name + " page " + node.page;
    }
    const controls = document.createElement("span");
    controls.append(
      button("Up", () => moveNode(index, -1), index === 0),
      button("Down", () => moveNode(index, 1), index === nodes.length - 1)
    );
    if (node.page === null && doc.pages !== null && doc.pages > 1) {
      controls.append(button("Pages", () => expandNode(index)));
    }
    controls.append(button("Remove", () => removeNode(index)));
    li.append(name, controls);
    list.appendChild(li);
  });
  document.getElementById("count").textContent = docs.size;
  mergeBtn.disabled = nodes.length === 0 || !pageCountsKnown();
}

input.addEventListener("change", () => {
  for (const file of input.files) {
    if (docs.size >= $max_documents) break;
    const doc = { id: "d" + nextId++, file: file, pages: null };
    docs.set(doc.id, doc);
    nodes.push({ doc: doc.id, page: null });
    countPages(doc);
  }
  input.value = "";
  render();
});

mergeBtn.addEventListener("click", async () => {
  const layout = buildLayout();
  if (layout.length === 0) return;
  const fd = new FormData();
  fd.append("quality", quality.value);
  fd.append("linearize", linearize.checked ? "1" : "0");
  fd.append("layout", JSON.stringify(layout));
  for (const docId of new Set(layout.map((item) => item.doc))) {
    const doc = docs.get(docId);
    fd.append("file_" + doc.id, doc.file, doc.file.name);
  }
  status.textContent = "Merging...";
  const res = await fetch("/api/merge", { method: "POST", body: fd });
  if (!res.ok) {
    const body = await res.json().catch(() => null);
    status.textContent = body && body.error ? body.error.message : "Merge failed";
    return;
  }
  const url = URL.createObjectURL(await res.blob());
  const a = document.createElement("a");
  a.href = url;
  a.download = "merged.pdf";
  document.body.appendChild(a);
  a.click();
  a.remove();
  URL.revokeObjectURL(url);
  status.textContent = "";
});
"""

_APP_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>PDF Tools</title>
    <style>$styles</style>
  </head>
  <body>
    <main>
      <header class="topbar">
        <div>
          <h1>PDF Tools</h1>
          <div class="muted">Merge PDFs, reorder or drop pages, pick output quality</div>
        </div>
        <form method="post" action="/logout">
          <button class="btn" type="submit">Log out</button>
        </form>
      </header>
      <section class="card">
        <label for="fileInput">Upload up to $max_documents PDF files</label>
        <input id="fileInput" type="file" accept="application/pdf,.pdf" multiple />
        <div class="muted"><span id="count">0</span>/$max_documents</div>
        <ul id="fileList" class="file-list"></ul>
      </section>
      <section class="card">
        <label for="quality">Quality <span id="qualityValue">80</span>%</label>
        <input id="quality" type="range" min="10" max="100" value="80" />
        <label><input id="linearize" type="checkbox" /> Linearize (fast web view)</label>
        <div>
          <button id="mergeBtn" class="btn primary" type="button" disabled>Download</button>
        </div>
        <div id="status" class="muted" role="status" aria-live="polite"></div>
        <div class="muted">Nothing is stored server-side; refresh clears the workspace.</div>
      </section>
    </main>
    <script>$script</script>
  </body>
</html>"""
)


def render_login_page(error: str | None = None) -> str:
    error_html = ""
    if error:
        error_html = f'<div class="alert" role="alert">{html.escape(error)}</div>'
    return _LOGIN_TEMPLATE.substitute(styles=_STYLES, error_html=error_html)


def render_app_page() -> str:
    script = Template(_APP_SCRIPT).substitute(max_documents=MAX_DOCUMENTS)
    return _APP_TEMPLATE.substitute(
        styles=_STYLES, script=script, max_documents=MAX_DOCUMENTS
    )
