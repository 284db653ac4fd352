# mini_amm/monitoring.py
import time
import socket
import threading
import logging
from socketserver import ThreadingMixIn
from typing import Optional
from wsgiref.simple_server import make_server, WSGIServer

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

logger = logging.getLogger(__name__)

# Create a threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True
    daemon_threads = True

class PoolMonitor:
    def __init__(self, namespace: str = "mini_amm", host: str = "127.0.0.1", port: int = 9090):
        self.namespace = namespace
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several monitors can coexist in one process
        self.registry = CollectorRegistry()

        self.operations = Counter('pool_operations_total', 'Pool operations processed', ['operation', 'status'], namespace=namespace, registry=self.registry)
        self.failures = Counter('pool_failures_total', 'Rejected pool operations by error code', ['operation', 'code'], namespace=namespace, registry=self.registry)
        self.latency = Histogram('pool_operation_latency_seconds', 'Time to process a pool operation', ['operation'], namespace=namespace, registry=self.registry)
        self.reserve_low = Gauge('pool_reserve_low', 'Committed low-asset reserve', ['pool'], namespace=namespace, registry=self.registry)
        self.reserve_high = Gauge('pool_reserve_high', 'Committed high-asset reserve', ['pool'], namespace=namespace, registry=self.registry)
        self.invariant = Gauge('pool_invariant_k', 'Constant product k', ['pool'], namespace=namespace, registry=self.registry)
        self.pool_count = Gauge('pools', 'Number of registered pools', namespace=namespace, registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', namespace=namespace, registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', namespace=namespace, registry=self.registry)

    def start_server(self, max_retries: int = 5, retry_delay: float = 2):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                # Port 0 binds an ephemeral port
                self.port = self.server.server_port

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98:  # Address already in use
                    if attempt < max_retries - 1:
                        logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                        time.sleep(retry_delay)
                    else:
                        logger.error(f"Failed to bind to port {self.port} after {max_retries} attempts")
                        raise
                else:
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self, pools=()):
        """Refresh gauges for the given pools and the host process."""
        pools = list(pools)
        self.pool_count.set(len(pools))
        for pool in pools:
            self.record_reserves(pool)

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_reserves(self, pool):
        reserves = pool.snapshot()
        label = pool.address.hex()
        self.reserve_low.labels(pool=label).set(reserves.reserve_low)
        self.reserve_high.labels(pool=label).set(reserves.reserve_high)
        self.invariant.labels(pool=label).set(reserves.invariant_product)

    def record_operation(self, pool, operation: str, latency: float, error: Optional[Exception] = None):
        self.latency.labels(operation=operation).observe(latency)
        if error is None:
            self.operations.labels(operation=operation, status='committed').inc()
            self.record_reserves(pool)
        else:
            self.operations.labels(operation=operation, status='rejected').inc()
            self.failures.labels(operation=operation, code=getattr(error, 'code', type(error).__name__)).inc()

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Read the current value of a metric sample from this monitor's registry."""
        return self.registry.get_sample_value(f"{self.namespace}_{name}", labels or {})
