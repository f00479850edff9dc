"""Static dashboard page consuming the /ws live stream."""

DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>AzNetMon - Network Monitor</title>
<style>
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: 'Segoe UI', Tahoma, Verdana, sans-serif; background: #4b5ba8; min-height: 100vh; padding: 20px; }
  .container { max-width: 1200px; margin: 0 auto; }
  .header { text-align: center; color: white; margin-bottom: 30px; }
  .header h1 { font-size: 2.4rem; margin-bottom: 8px; }
  .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; margin-bottom: 30px; }
  .stat-card { background: rgba(255,255,255,0.12); border-radius: 12px; padding: 20px; text-align: center; color: white; }
  .stat-card h3 { font-size: 2rem; margin-bottom: 5px; }
  .targets-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(340px, 1fr)); gap: 20px; }
  .target-card { background: white; border-radius: 12px; padding: 20px; box-shadow: 0 8px 24px rgba(0,0,0,0.1); }
  .target-header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 12px; }
  .target-name { font-size: 1.2rem; font-weight: 600; color: #333; }
  .badge { background: #e2e3e5; color: #383d41; padding: 3px 8px; border-radius: 4px; font-size: 0.8rem; margin-left: 6px; }
  .status { padding: 6px 14px; border-radius: 16px; font-weight: 600; font-size: 0.9rem; }
  .status.online { background: #d4edda; color: #155724; }
  .status.offline { background: #f8d7da; color: #721c24; }
  .metrics { display: grid; grid-template-columns: repeat(3, 1fr); gap: 10px; }
  .metric { text-align: center; padding: 10px; background: #f8f9fa; border-radius: 8px; }
  .metric-value { font-size: 1.3rem; font-weight: 700; color: #333; }
  .metric-label { font-size: 0.8rem; color: #666; }
  .error-message { background: #f8d7da; color: #721c24; padding: 8px; border-radius: 6px; font-size: 0.85rem; margin-top: 10px; }
  .last-updated { text-align: center; color: #666; font-size: 0.85rem; margin-top: 12px; }
  .loading { text-align: center; color: white; font-size: 1.2rem; margin: 50px 0; }
</style>
</head>
<body>
<div class="container">
  <div class="header">
    <h1>AzNetMon</h1>
    <p>Real-time Network Monitoring Dashboard (ICMP &amp; TCP)</p>
  </div>
  <div class="stats">
    <div class="stat-card"><h3 id="total-targets">-</h3><p>Total Targets</p></div>
    <div class="stat-card"><h3 id="online-targets">-</h3><p>Online</p></div>
    <div class="stat-card"><h3 id="offline-targets">-</h3><p>Offline</p></div>
    <div class="stat-card"><h3 id="avg-latency">-</h3><p>Avg Latency (ms)</p></div>
  </div>
  <div id="loading" class="loading">Connecting to monitoring service...</div>
  <div id="targets" class="targets-grid" style="display: none;"></div>
</div>
<script>
  const results = {};
  const stats = {};

  function keyOf(result) {
    return result.protocol === 'TCP' ? result.target + '-tcp-' + result.port : result.target;
  }

  function escapeHtml(text) {
    const div = document.createElement('div');
    div.textContent = text;
    return div.innerHTML;
  }

  function connect() {
    const scheme = window.location.protocol === 'https:' ? 'wss:' : 'ws:';
    const socket = new WebSocket(scheme + '//' + window.location.host + '/ws');

    socket.onopen = function() {
      document.getElementById('loading').style.display = 'none';
      document.getElementById('targets').style.display = 'grid';
    };

    socket.onmessage = function(event) {
      const message = JSON.parse(event.data);
      if (message.type === 'summary') {
        message.summary.target_stats.forEach(s => { stats[s.target] = s; });
        document.getElementById('avg-latency').textContent = message.summary.avg_latency_ms.toFixed(1);
      } else {
        results[keyOf(message)] = message;
      }
      render();
    };

    socket.onclose = function() {
      setTimeout(connect, 3000);
    };
  }

  function render() {
    const all = Object.values(results);
    const online = all.filter(r => r.success);
    document.getElementById('total-targets').textContent = all.length;
    document.getElementById('online-targets').textContent = online.length;
    document.getElementById('offline-targets').textContent = all.length - online.length;

    const container = document.getElementById('targets');
    container.innerHTML = '';
    all.forEach(result => {
      const s = stats[keyOf(result)];
      const name = result.protocol === 'TCP' ? result.target + ':' + result.port : result.target;
      const card = document.createElement('div');
      card.className = 'target-card';
      card.innerHTML =
        '<div class="target-header">' +
          '<div class="target-name">' + escapeHtml(name) + '<span class="badge">' + result.protocol + '</span></div>' +
          '<div class="status ' + (result.success ? 'online">Online' : 'offline">Offline') + '</div>' +
        '</div>' +
        '<div class="metrics">' +
          '<div class="metric"><div class="metric-value">' + (result.success ? result.duration_ms.toFixed(1) : '-') + '</div><div class="metric-label">Latency (ms)</div></div>' +
          '<div class="metric"><div class="metric-value">' + (s ? s.avg_latency_ms.toFixed(1) : '-') + '</div><div class="metric-label">Avg (ms)</div></div>' +
          '<div class="metric"><div class="metric-value">' + (s ? s.packet_loss_percent.toFixed(1) + '%' : '-') + '</div><div class="metric-label">Loss</div></div>' +
        '</div>' +
        (result.error ? '<div class="error-message">' + escapeHtml(result.error) + '</div>' : '') +
        '<div class="last-updated">Last updated: ' + new Date(result.timestamp).toLocaleTimeString() + '</div>';
      container.appendChild(card);
    });
  }

  connect();
</script>
</body>
</html>
"""
