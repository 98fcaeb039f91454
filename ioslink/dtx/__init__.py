"""DTX message encoding and decoding, fragment reassembly, LZ4 payloads, channels and connections."""