HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <title>portctl: sockets</title>
  <style>
    body { background:#14181d; color:#e8eaed; font-family: ui-sans-serif,system-ui,Segoe UI,Arial; }
    table { border-collapse: collapse; width: 100%; }
    td, th { padding: 3px 8px; border-bottom: 1px solid #2a2f36; text-align: left; font-size: 13px; }
    tr.group td { background:#1f252c; font-weight: 600; }
    button { background:#2a2f36; color:#e8eaed; border:1px solid #444; border-radius:6px; cursor:pointer; }
    #status { color:#9aa0a6; margin: 8px 0; }
    .fail { color:#e06666; } .ok { color:#6aa84f; }
  </style>
</head>
<body>
  <h2>portctl: sockets</h2>
  <div>
    <button onclick="rebuild()">Rebuild index</button>
    <select id="view" onchange="load()">
      <option value="port">by port</option>
      <option value="process">by process</option>
    </select>
    <select id="proto" onchange="load()">
      <option value="">all protocols</option>
      <option value="tcp">TCP</option>
      <option value="udp">UDP</option>
    </select>
  </div>
  <div id="status"></div>
  <table>
    <thead><tr><th>proto</th><th>local</th><th>remote</th><th>state</th><th>pid</th><th>process</th><th></th></tr></thead>
    <tbody id="rows"></tbody>
  </table>

  <script>
  const $ = (id) => document.getElementById(id);

  function esc(s){ return String(s ?? '').replace(/[&<>"]/g, c => ({'&':'&amp;','<':'&lt;','>':'&gt;','"':'&quot;'}[c])); }
  function ep(a, p){ return a === null ? '*:*' : (a.includes(':') ? `[${a}]:${p}` : `${a}:${p}`); }

  async function load(){
    const view = $('view').value, proto = $('proto').value;
    const r = await fetch(`/api/sockets?view=${view}` + (proto ? `&proto=${proto}` : ''));
    const data = await r.json();
    if (!r.ok) { $('status').innerHTML = `<span class="fail">${esc(data.detail)}</span>`; return; }
    $('status').textContent = `generation ${data.generation}`;
    const out = [];
    for (const [key, socks] of Object.entries(data.groups)) {
      const target = view === 'port' ? {port: Number(key)} : {pid: Number(key)};
      const label = view === 'port' ? `port ${key}` : `pid ${key} ${esc(socks[0].process_name)}`;
      out.push(`<tr class="group"><td colspan="6">${label}</td>` +
               `<td><button onclick='kill(${JSON.stringify(target)})'>kill</button></td></tr>`);
      for (const s of socks) {
        out.push(`<tr><td>${s.protocol}</td><td>${esc(ep(s.local_address, s.local_port))}</td>` +
                 `<td>${esc(ep(s.remote_address, s.remote_port))}</td><td>${s.state ?? '-'}</td>` +
                 `<td>${s.pid}</td><td>${esc(s.process_name)}</td><td></td></tr>`);
      }
    }
    $('rows').innerHTML = out.join('');
  }

  async function rebuild(){
    const r = await fetch('/api/refresh', {method: 'POST'});
    const data = await r.json();
    if (!r.ok) { $('status').innerHTML = `<span class="fail">${esc(data.detail)}</span>`; return; }
    await load();
  }

  async function post(url, body){
    const r = await fetch(url, {method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify(body)});
    return [r.ok, await r.json()];
  }

  async function kill(target){
    const [ok, data] = await post('/api/kill/plan', target);
    if (!ok) { alert(data.detail); return; }
    const plan = data.plan;
    const lines = plan.targets.map(t => `${t.allowed ? 'kill' : 'DENY'} ${t.pid} ${t.process_name}` + (t.allowed ? '' : ` (${t.reason})`));
    if (!confirm(`Terminate ${plan.target}?\\n\\n` + lines.join('\\n'))) return;
    const [ok2, res] = await post('/api/kill', {...target, confirmation: plan.token});
    if (!res.outcomes) { alert(res.detail); return; }
    $('status').innerHTML = res.outcomes.map(o =>
      `<div class="${o.verified_absent ? 'ok' : 'fail'}">${o.pid} ${esc(o.process_name)}: ${esc(o.reason)}</div>`).join('');
  }

  load();
  </script>
</body>
</html>
"""

def render_html(udp_enabled: bool) -> str:
    if udp_enabled:
        return HTML
    return HTML.replace("<h2>portctl: sockets</h2>", "<h2>portctl: sockets (UDP collection disabled)</h2>")
