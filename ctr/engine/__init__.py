"""Put pipeline building blocks"""
