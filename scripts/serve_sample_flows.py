import asyncio
import json
import random
import time

from aiohttp import web

HOSTS = ["10.0.0.1", "10.0.0.2", "10.0.0.7", "192.168.1.20", "8.8.8.8", "1.1.1.1"]
PORTS = [53, 80, 443, 443, 443, 22, 3389, 8080]


def sample_flow():
    src, dst = random.sample(HOSTS, 2)
    fwd = random.choice([400, 1200, 9000, 60000])
    bwd = random.choice([200, 800, 50000, 90000])
    msg = {
        "timestamp": time.time(),
        "src_ip": src,
        "dst_ip": dst,
        "src_port": random.randint(1024, 65535),
        "dst_port": random.choice(PORTS),
        "protocol": random.choice([6, 6, 17, 1]),
        "total_packets": random.randint(1, 200),
        "flow_duration": round(random.uniform(0.01, 5.0), 3),
    }
    # Half the samples leave total_bytes out, like exporters that only
    # report directional counters.
    if random.random() < 0.5:
        msg["total_bytes"] = fwd + bwd
    else:
        msg["total_fwd_bytes"] = fwd
        msg["total_bwd_bytes"] = bwd
    return msg


async def flows_ws(request):
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    while not ws.closed:
        await ws.send_str(json.dumps(sample_flow()))
        await asyncio.sleep(0.2)
    return ws


def main():
    app = web.Application()
    app.router.add_get("/flows/ws", flows_ws)
    web.run_app(app, host="127.0.0.1", port=8888)


if __name__ == "__main__":
    main()
