class Layer:
    # Subclasses override as needed
    def forward(self, x, out, batch_size=None):
        # Write the layer output for x into out
        raise NotImplementedError

    def backward(self, x, grad_out, grad_in, batch_size=None):
        # Write grad wrt input into grad_in, update parameter grads
        raise NotImplementedError

    def params(self):
        # Return list of parameter buffers (e.g., [W, b])
        return []

    def grads(self):
        # Return list of gradient buffers matching params()
        return []

    def parameters(self):
        # [param, grad] pairs, as consumed by the optimizers
        return [[p, g] for p, g in zip(self.params(), self.grads())]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
